#!/usr/bin/env python3
"""
Reconstruct a split archive from its part files.

This file is shipped next to the part files as ``<name>-reconstruct.py``.
It only needs the Python standard library:

    python emsdk-ubuntu-latest-reconstruct.py

The archive to rebuild is derived from the script's own file name
(``emsdk-ubuntu-latest-reconstruct.py`` -> ``emsdk-ubuntu-latest.tar.*``).
Parts named ``<archive>.part*`` are joined in plain lexicographic order, so
``part001`` < ``part002`` < ... < ``part010``. The manifest is never read.
"""

from __future__ import annotations

import argparse
import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

SCRIPT_SUFFIXES = ("-reconstruct.py", "-reconstruct.sh")
ARCHIVE_EXTENSIONS = (".tar.xz", ".tar.zst", ".tar.gz")
EXTRACT_COMMANDS = {
    ".tar.xz": "tar -xJf",
    ".tar.zst": "tar --zstd -xf",
    ".tar.gz": "tar -xzf",
}
PART_MARKER = ".part"
CHUNK_SIZE = 4 * 1024 * 1024

EXIT_FAILED = 1
EXIT_CORRUPT = 2
EXIT_INTERRUPTED = 130


class ReconstructionError(Exception):
    """Reconstruction could not produce an archive."""

    exit_code = EXIT_FAILED


class IncompletePartSetError(ReconstructionError):
    """No parts were found, or the parts do not form a complete archive."""


class IntegrityError(ReconstructionError):
    """The reconstructed archive failed its compression self-test."""

    exit_code = EXIT_CORRUPT


def archive_base_from_script(script_name: str) -> str | None:
    """Strip the ``-reconstruct.<ext>`` suffix from a script file name."""
    name = Path(script_name).name
    for suffix in SCRIPT_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return None


def find_parts(directory: Path, archive_name: str) -> list[Path]:
    """Return the ``<archive_name>.part*`` files in directory, sorted by file name."""
    prefix = archive_name + PART_MARKER
    if not directory.is_dir():
        return []
    parts = [p for p in directory.iterdir() if p.name.startswith(prefix) and p.is_file()]
    return sorted(parts, key=lambda p: p.name)


def discover_archive_names(directory: Path) -> list[str]:
    """List every archive name that has at least one part file in directory."""
    names = set()
    if directory.is_dir():
        for p in directory.iterdir():
            if not p.is_file():
                continue
            for ext in ARCHIVE_EXTENSIONS:
                marker = ext + PART_MARKER
                if marker in p.name:
                    names.add(p.name[: p.name.rindex(marker) + len(ext)])
    return sorted(names)


def resolve_archive_name(directory: Path, base: str | None) -> str:
    """Work out which archive to rebuild.

    With a base name (``emsdk-ubuntu-latest``) every known compression
    extension is tried; without one the directory must hold parts for exactly
    one archive.
    """
    if base is not None:
        candidates = [base + ext for ext in ARCHIVE_EXTENSIONS if find_parts(directory, base + ext)]
        pattern = f"{base}.tar.*{PART_MARKER}*"
    else:
        candidates = discover_archive_names(directory)
        pattern = f"*.tar.*{PART_MARKER}*"

    if not candidates:
        raise IncompletePartSetError(f"No split parts found matching pattern {pattern} in {directory}")
    if len(candidates) > 1:
        raise ReconstructionError(
            f"Parts for several archives found in {directory}: {', '.join(candidates)} "
            "(pass --archive to choose one)"
        )
    return candidates[0]


def join_parts(parts: list[Path], output: Path) -> int:
    """Concatenate parts, in the given order, into output. Returns bytes written."""
    total = 0
    try:
        with open(output, "wb") as out:
            for part in parts:
                print(f"  Adding {part.name}...")
                with open(part, "rb") as inp:
                    while True:
                        chunk = inp.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        out.write(chunk)
                        total += len(chunk)
    except (KeyboardInterrupt, Exception):
        output.unlink(missing_ok=True)
        raise
    return total


def _drain(stream) -> None:
    while stream.read(CHUNK_SIZE):
        pass


def _run_tool_test(tool: str, path: Path) -> bool | None:
    exe = shutil.which(tool)
    if exe is None:
        return None
    result = subprocess.run([exe, "-t", str(path)], capture_output=True)
    return result.returncode == 0


def _check_xz(path: Path) -> bool | None:
    try:
        import lzma
    except ImportError:
        return _run_tool_test("xz", path)
    try:
        with lzma.open(path, "rb") as stream:
            _drain(stream)
    except (lzma.LZMAError, EOFError):
        return False
    return True


def _check_gz(path: Path) -> bool | None:
    import gzip
    import zlib

    try:
        with gzip.open(path, "rb") as stream:
            _drain(stream)
    except (OSError, EOFError, zlib.error):
        return False
    return True


def _check_zst(path: Path) -> bool | None:
    try:
        import zstandard as zstd
    except ImportError:
        return _run_tool_test("zstd", path)
    # A truncated frame decodes without error, so the frame end has to be seen
    dctx = zstd.ZstdDecompressor()
    dobj = dctx.decompressobj()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                while chunk:
                    if dobj.eof:
                        dobj = dctx.decompressobj()
                    dobj.decompress(chunk)
                    chunk = dobj.unused_data if dobj.eof else b""
    except zstd.ZstdError:
        return False
    return dobj.eof


INTEGRITY_CHECKERS = {
    ".tar.xz": _check_xz,
    ".tar.gz": _check_gz,
    ".tar.zst": _check_zst,
}


def check_integrity(path: Path) -> bool | None:
    """Run a compression self-test on a reconstructed archive.

    Returns:
        True if the stream decodes cleanly, False if it is corrupt,
        None if no checker is available for this format
    """
    for ext, checker in INTEGRITY_CHECKERS.items():
        if path.name.endswith(ext):
            return checker(path)
    return None


def cleanup_command(parts: list[Path]) -> str:
    names = [p.name for p in parts]
    if os.name == "nt":
        return "del " + " ".join(f'"{n}"' for n in names)
    return "rm " + " ".join(shlex.quote(n) for n in names)


def reconstruct(directory: Path, archive_name: str, verify: bool = True) -> tuple[Path, list[Path], bool | None]:
    """Rebuild ``directory / archive_name`` from its parts.

    Returns:
        (output path, parts consumed, integrity result)

    Raises:
        IncompletePartSetError: no parts matching ``<archive_name>.part*``
        IntegrityError: the checker ran and reported corruption (output is removed)
        OSError: reading a part or writing the output failed (output is removed)
    """
    parts = find_parts(directory, archive_name)
    if not parts:
        raise IncompletePartSetError(
            f"No split parts found matching pattern {archive_name}{PART_MARKER}* in {directory}"
        )

    output = directory / archive_name
    print(f"Reconstructing {archive_name} from split parts...")
    print(f"Found {len(parts)} parts to reconstruct")
    total = join_parts(parts, output)
    print(f"Successfully reconstructed: {output.name} ({total:,} bytes)")

    integrity = None
    if verify:
        try:
            integrity = check_integrity(output)
        except KeyboardInterrupt:
            output.unlink(missing_ok=True)
            raise
        if integrity is False:
            output.unlink(missing_ok=True)
            raise IntegrityError(
                f"Archive integrity check failed for {archive_name}: the parts are corrupted or incomplete"
            )
        if integrity:
            print("✓ Archive integrity verified")
        else:
            print("⚠️  WARNING: Could not verify archive integrity (no checker available for this format)")

    return output, parts, integrity


def main(argv: list[str] | None = None, script_name: str | None = None) -> int:
    """Entry point.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        script_name: File name this procedure was shipped as; used to derive the archive name
    """
    parser = argparse.ArgumentParser(description="Reconstruct a split archive from its part files")
    parser.add_argument("--dir", type=Path, default=None, help="Directory holding the parts (default: the script's directory)")
    parser.add_argument("--archive", help="Archive to rebuild, e.g. emsdk-ubuntu-latest.tar.xz")
    parser.add_argument("--no-verify", action="store_true", help="Skip the compression self-test")
    args = parser.parse_args(argv)

    if args.dir is not None:
        directory = args.dir
    elif script_name is not None:
        directory = Path(script_name).resolve().parent
    else:
        directory = Path.cwd()

    try:
        if args.archive:
            archive_name = args.archive
        else:
            base = archive_base_from_script(script_name) if script_name else None
            archive_name = resolve_archive_name(directory, base)

        output, parts, _ = reconstruct(directory, archive_name, verify=not args.no_verify)
    except KeyboardInterrupt:
        print("\nReconstruction cancelled; partial archive removed", file=sys.stderr)
        return EXIT_INTERRUPTED
    except ReconstructionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
    except OSError as e:
        print(f"ERROR: Failed to reconstruct archive: {e}", file=sys.stderr)
        return EXIT_FAILED

    extract = "tar -xf"
    for ext, command in EXTRACT_COMMANDS.items():
        if output.name.endswith(ext):
            extract = command
    print()
    print("To extract:")
    print(f"  {extract} {output.name}")
    print()
    print("Optional: Remove split parts after successful reconstruction:")
    print(f"  {cleanup_command(parts)}")
    return 0


if __name__ == "__main__":
    sys.exit(main(script_name=__file__))
