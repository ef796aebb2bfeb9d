#!/usr/bin/env python3
"""
Split large archives into parts for GitHub storage.

GitHub has a 100 MB file size limit. This tool splits large .tar.xz/.tar.zst
archives into parts (95 MB each by default), then writes a manifest and the
reconstruction scripts next to them. Archives that already fit are left alone.

Parts are named ``<archive>.part001``, ``<archive>.part002``, ... with the
suffix width growing past 999 parts, so sorting the names as plain strings
always gives the original order.
"""

import argparse
import hashlib
import math
import sys
from datetime import datetime
from pathlib import Path

from .config import ARCHIVE_EXTENSIONS, DEFAULT_PART_SIZE_MB, MB, PART_SUFFIX_MIN_WIDTH
from .errors import CapExceededError, IncompletePartSetError, SourceMissingError
from .manifest import build_manifest, write_manifest
from .models import ArchivePart, PackageResult, SplitResult
from .reconstruct import emit_reconstruction_scripts
from .size_probe import format_size, get_file_size
from .utils import print_section, strip_archive_extension

READ_BLOCK_SIZE = 4 * 1024 * 1024


def part_count(size: int, part_size: int) -> int:
    """Number of parts needed to hold size bytes (0 when no split is needed)."""
    if size <= part_size:
        return 0
    return math.ceil(size / part_size)


def part_suffix(index: int, count: int) -> str:
    """Zero-padded suffix for part ``index`` (1-based) of ``count`` parts."""
    width = max(PART_SUFFIX_MIN_WIDTH, len(str(count)))
    return f"{index:0{width}d}"


def part_name(archive_name: str, index: int, count: int) -> str:
    return f"{archive_name}.part{part_suffix(index, count)}"


def remove_parts(parts: list[Path]) -> None:
    for part in parts:
        part.unlink(missing_ok=True)


def remove_stale_parts(output_dir: Path, archive_name: str, keep: set[str]) -> list[Path]:
    """Delete ``<archive_name>.part*`` files left over from an earlier split."""
    removed = []
    for stale in sorted(output_dir.glob(f"{archive_name}.part*")):
        if stale.is_file() and stale.name not in keep:
            stale.unlink()
            removed.append(stale)
    return removed


def _write_part(src, part_path: Path, size: int, whole_hash) -> str:
    part_hash = hashlib.sha256()
    remaining = size
    with open(part_path, "wb") as pf:
        while remaining > 0:
            block = src.read(min(READ_BLOCK_SIZE, remaining))
            if not block:
                raise IncompletePartSetError(
                    f"Archive ended early while writing {part_path.name} ({remaining:,} bytes missing)"
                )
            pf.write(block)
            part_hash.update(block)
            whole_hash.update(block)
            remaining -= len(block)
    return part_hash.hexdigest()


def verify_parts(parts: list[ArchivePart], total_size: int, part_size: int) -> None:
    """Re-check the written parts on disk.

    Raises:
        IncompletePartSetError: part sizes on disk do not add up to total_size
        CapExceededError: a part is larger than part_size
    """
    on_disk = 0
    for part in parts:
        size = get_file_size(part.path)
        if size > part_size:
            raise CapExceededError(part.path, size, part_size)
        on_disk += size
    if on_disk != total_size:
        raise IncompletePartSetError(
            f"Split parts of {parts[0].archive_name} add up to {on_disk:,} bytes, expected {total_size:,}"
        )


def split_archive(
    archive_path: Path, part_size: int, output_dir: Path | None = None, keep_original: bool = False
) -> SplitResult | None:
    """Split a large archive into parts.

    Args:
        archive_path: Path to the archive
        part_size: Maximum size of each part in bytes
        output_dir: Directory to write parts to (default: same as archive)
        keep_original: Leave the original archive in place after splitting

    Returns:
        SplitResult describing the parts, or None if the archive fits in one part

    Raises:
        SourceMissingError: archive does not exist
        SizeUnknownError: archive size cannot be determined
        CapExceededError, IncompletePartSetError: the written parts failed verification
        OSError: writing a part failed; parts written so far are removed
    """
    archive_path = Path(archive_path)
    if part_size <= 0:
        raise ValueError(f"Part size must be positive, got {part_size}")
    if not archive_path.exists():
        raise SourceMissingError(archive_path)

    size = get_file_size(archive_path)
    count = part_count(size, part_size)
    if count == 0:
        return None

    if output_dir is None:
        output_dir = archive_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"Splitting {archive_path.name} ({format_size(size)}) into {count} parts...")
    print(f"Part size: {format_size(part_size)} ({part_size:,} bytes)")

    names = [part_name(archive_path.name, i, count) for i in range(1, count + 1)]
    for stale in remove_stale_parts(output_dir, archive_path.name, set(names)):
        print(f"  Removed stale part: {stale.name}")

    whole_hash = hashlib.sha256()
    parts: list[ArchivePart] = []
    written: list[Path] = []

    try:
        with open(archive_path, "rb") as f:
            for index, name in enumerate(names, 1):
                chunk_size = min(part_size, size - (index - 1) * part_size)
                part_path = output_dir / name
                written.append(part_path)
                sha256 = _write_part(f, part_path, chunk_size, whole_hash)
                parts.append(ArchivePart(archive_path.name, index, part_path, chunk_size, sha256))
                print(f"  Part {index}: {name} ({chunk_size:,} bytes, SHA256: {sha256[:16]}...)")

        verify_parts(parts, size, part_size)
    except (KeyboardInterrupt, Exception):
        print(f"\n⚠️  Split of {archive_path.name} failed - removing {len(written)} partial part file(s)...")
        remove_parts(written)
        raise

    result = SplitResult(archive_path, part_size, size, whole_hash.hexdigest(), parts)
    print(f"Created {len(parts)} parts ({size:,} bytes total)")

    if not keep_original:
        retire_original(archive_path)
    return result


def retire_original(archive_path: Path) -> None:
    print(f"Removing original archive: {archive_path.name}")
    archive_path.unlink()


def package_archive(
    archive_path: Path,
    part_size: int,
    version: str = "unknown",
    output_dir: Path | None = None,
    keep_original: bool = False,
    now: datetime | None = None,
) -> PackageResult | None:
    """Split an oversized archive and write its manifest and reconstruction scripts.

    The original archive is only removed once parts, manifest and scripts are
    all on disk. If any of them fails, everything written is removed again and
    the original stays.

    Returns:
        PackageResult, or None if the archive is under the size limit
    """
    archive_path = Path(archive_path)
    _, ext = strip_archive_extension(archive_path.name, ARCHIVE_EXTENSIONS)
    if not ext:
        raise ValueError(
            f"Unsupported archive type: {archive_path.name} (expected one of {', '.join(ARCHIVE_EXTENSIONS)})"
        )

    print_section(f"CHECK IF SPLIT NEEDED (max {format_size(part_size)})")
    split = split_archive(archive_path, part_size, output_dir, keep_original=True)
    if split is None:
        print(f"✅ {archive_path.name} is within the limit - no split needed")
        return None

    target_dir = split.parts[0].path.parent
    extra: list[Path] = []
    try:
        print("Creating reconstruction scripts...")
        scripts = emit_reconstruction_scripts(split.archive_name, target_dir)
        extra.extend(scripts)
        print("Creating manifest file...")
        manifest_path = write_manifest(build_manifest(split, version, now), target_dir)
        extra.append(manifest_path)
    except (KeyboardInterrupt, Exception):
        remove_parts([p.path for p in split.parts] + extra)
        raise

    result = PackageResult(split, manifest_path, scripts)
    if not keep_original:
        retire_original(archive_path)
    return result


def read_version(version: str | None, version_file: Path | None) -> str:
    if version:
        return version
    if version_file is not None:
        try:
            return version_file.read_text(encoding="utf-8").strip().strip('"') or "unknown"
        except OSError:
            print(f"⚠️  Could not read version file {version_file}, using 'unknown'")
    return "unknown"


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Split large archives for GitHub storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Split the Ubuntu SDK archive if it is over 95 MB
  python -m emsdk_binaries split .build/emsdk-ubuntu-latest.tar.xz

  # Split with custom part size and record the SDK version
  python -m emsdk_binaries split --part-size 90 --version-file .build/emsdk/.emscripten_version archive.tar.xz
""",
    )

    parser.add_argument("archive", type=Path, help="Path to .tar.xz/.tar.zst archive to split")
    size_group = parser.add_mutually_exclusive_group()
    size_group.add_argument(
        "--part-size",
        type=int,
        default=DEFAULT_PART_SIZE_MB,
        help=f"Size of each part in MB (default: {DEFAULT_PART_SIZE_MB} MB)",
    )
    size_group.add_argument("--part-size-bytes", type=int, help="Size of each part in bytes")
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Directory to write parts to (default: same as archive)",
    )
    parser.add_argument("--version", help="Version recorded in the manifest")
    parser.add_argument("--version-file", type=Path, help="File holding the version, e.g. emsdk/.emscripten_version")
    parser.add_argument("--keep-original", action="store_true", help="Do not delete the archive after splitting")

    args = parser.parse_args(argv)
    part_size = args.part_size_bytes if args.part_size_bytes is not None else args.part_size * MB

    try:
        result = package_archive(
            args.archive,
            part_size,
            version=read_version(args.version, args.version_file),
            output_dir=args.output_dir,
            keep_original=args.keep_original,
        )

        if result is None:
            return 0

        print("\nSuccess! Files created:")
        for path in result.files:
            print(f"  {path.name}")

        print("\nTo rejoin:")
        print(f"  python {result.scripts[0].name}")
        print(f"  or: bash {result.scripts[1].name}")
        return 0

    except KeyboardInterrupt:
        print("\n❌ Split cancelled by user")
        return 130
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
