#!/usr/bin/env python3
"""
Manifest files for split archives.

A manifest is written next to the parts as ``<base>-manifest.json``, where
``<base>`` is the archive name without its compression suffix. It documents
the split (version, date, part list with sizes and checksums, how to rebuild)
for people and tooling. The reconstruction script never reads it; it finds
the parts on disk.
"""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import ARCHIVE_EXTENSIONS, COMPRESSION_NAMES, EXTRACT_COMMANDS
from .errors import ManifestError
from .models import MANIFEST_VERSION, Manifest, SplitResult
from .size_probe import probe_size
from .utils import get_file_hash, strip_archive_extension, utc_timestamp

MANIFEST_SUFFIX = "-manifest.json"

REQUIRED_FIELDS = (
    "manifest_version",
    "archive",
    "version",
    "split_date",
    "compression",
    "split_size",
    "total_parts",
    "total_size",
    "parts",
)


def manifest_name(base: str) -> str:
    return f"{base}{MANIFEST_SUFFIX}"


def reconstruction_instructions(archive_name: str) -> list[str]:
    """Human-readable rebuild steps; kept in step with join_parts.py."""
    base, ext = strip_archive_extension(archive_name, ARCHIVE_EXTENSIONS)
    extract = EXTRACT_COMMANDS.get(ext, "tar -xf")
    return [
        f"1. Download all {archive_name}.part* files to the same directory",
        f"2. Download {base}-reconstruct.py (or {base}-reconstruct.sh) to the same directory",
        f"3. Run: python {base}-reconstruct.py (or: bash {base}-reconstruct.sh)",
        f"4. Extract: {extract} {archive_name}",
        "Alternative manual reconstruction:",
        f"1. Run: cat {archive_name}.part* > {archive_name}",
        f"2. Extract: {extract} {archive_name}",
    ]


def build_manifest(split: SplitResult, version: str = "unknown", now: datetime | None = None) -> Manifest:
    """Describe a freshly split archive.

    Args:
        split: Result of split_archive
        version: Identity/version tag of what the archive contains
        now: Timestamp to record (default: SOURCE_DATE_EPOCH or the current time)
    """
    _, ext = strip_archive_extension(split.archive_name, ARCHIVE_EXTENSIONS)
    return Manifest(
        archive=split.archive_name,
        version=version,
        split_date=utc_timestamp(now),
        compression=COMPRESSION_NAMES.get(ext, "unknown"),
        split_size=split.part_size,
        total_parts=split.part_count,
        total_size=sum(p.size for p in split.parts),
        sha256=split.sha256,
        parts=[{"name": p.name, "size": p.size, "sha256": p.sha256} for p in split.parts],
        instructions=reconstruction_instructions(split.archive_name),
    )


def write_manifest(manifest: Manifest, output_dir: Path) -> Path:
    """Write the manifest as JSON and return its path."""
    base, _ = strip_archive_extension(manifest.archive, ARCHIVE_EXTENSIONS)
    manifest_path = output_dir / manifest_name(base)
    with open(manifest_path, "w", encoding="utf-8", newline="\n") as f:
        json.dump(manifest.to_dict(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    return manifest_path


def _require(data: dict[str, Any], key: str, kind: type, path: Path) -> Any:
    value = data[key]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ManifestError(f"{path}: field '{key}' must be {kind.__name__}, got {value!r}")
    return value


def read_manifest(path: Path | str) -> Manifest:
    """Parse a manifest file and check it against the contract.

    Raises:
        ManifestError: if the file is not valid JSON or breaks the contract
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ManifestError(f"{path}: not valid JSON ({e})") from e

    if not isinstance(data, dict):
        raise ManifestError(f"{path}: manifest must be a JSON object")
    missing = [key for key in REQUIRED_FIELDS if key not in data]
    if missing:
        raise ManifestError(f"{path}: missing fields: {', '.join(missing)}")
    if data["manifest_version"] != MANIFEST_VERSION:
        raise ManifestError(
            f"{path}: unsupported manifest_version {data['manifest_version']!r} (expected {MANIFEST_VERSION})"
        )

    parts = _require(data, "parts", list, path)
    for entry in parts:
        if not isinstance(entry, dict) or "name" not in entry or "size" not in entry:
            raise ManifestError(f"{path}: malformed part entry {entry!r}")

    return Manifest(
        archive=_require(data, "archive", str, path),
        version=str(data["version"]),
        split_date=_require(data, "split_date", str, path),
        compression=_require(data, "compression", str, path),
        split_size=_require(data, "split_size", int, path),
        total_parts=_require(data, "total_parts", int, path),
        total_size=_require(data, "total_size", int, path),
        sha256=str(data.get("sha256", "")),
        parts=parts,
        instructions=list(data.get("instructions", [])),
        manifest_version=data["manifest_version"],
    )


def verify_manifest(path: Path | str, check_hashes: bool = True) -> list[str]:
    """Compare a manifest with the part files sitting next to it.

    Returns:
        A list of problems; empty when manifest and parts agree
    """
    path = Path(path)
    manifest = read_manifest(path)
    directory = path.parent
    problems = []

    if manifest.total_parts != len(manifest.parts):
        problems.append(f"total_parts is {manifest.total_parts} but {len(manifest.parts)} parts are listed")

    listed_total = sum(entry["size"] for entry in manifest.parts)
    if listed_total != manifest.total_size:
        problems.append(f"total_size is {manifest.total_size:,} but listed parts add up to {listed_total:,}")

    names = [entry["name"] for entry in manifest.parts]
    if names != sorted(names):
        problems.append("part names do not sort in sequence order")

    on_disk = sorted(p.name for p in directory.glob(f"{manifest.archive}.part*") if p.is_file())
    extra = sorted(set(on_disk) - set(names))
    if extra:
        problems.append(f"unlisted part files present: {', '.join(extra)}")

    for entry in manifest.parts:
        part_path = directory / entry["name"]
        size = probe_size(part_path)
        if size is None:
            problems.append(f"missing part: {part_path}")
            continue
        if size != entry["size"]:
            problems.append(f"{entry['name']}: size {size:,} != manifest {entry['size']:,}")
        elif size > manifest.split_size:
            problems.append(f"{entry['name']}: size {size:,} exceeds split_size {manifest.split_size:,}")
        if check_hashes and entry.get("sha256") and get_file_hash(part_path) != entry["sha256"]:
            problems.append(f"{entry['name']}: SHA256 mismatch")

    return problems


def main(argv: list[str] | None = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Check a split archive against its manifest")
    parser.add_argument("manifest", type=Path, help="Path to <name>-manifest.json")
    parser.add_argument("--skip-hashes", action="store_true", help="Only compare counts and sizes")
    args = parser.parse_args(argv)

    try:
        problems = verify_manifest(args.manifest, check_hashes=not args.skip_hashes)
    except (OSError, ManifestError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    if problems:
        print(f"❌ {args.manifest.name}: {len(problems)} problem(s)")
        for problem in problems:
            print(f"  - {problem}")
        return 1

    print(f"✓ {args.manifest.name}: manifest matches part files")
    return 0


if __name__ == "__main__":
    sys.exit(main())
