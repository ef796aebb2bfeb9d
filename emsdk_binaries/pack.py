#!/usr/bin/env python3
"""
Create the compressed archive for an installed Emscripten SDK directory.

The archive is named ``<name>.tar.xz`` (xz preset 9, the default) or
``<name>.tar.zst`` (zstd, level 22 by default). Compression is streamed so
large SDK trees never sit in memory.
"""

import argparse
import sys
import tarfile
import time
from pathlib import Path

from .errors import SourceMissingError
from .size_probe import format_size, get_file_size
from .utils import print_section

FORMATS = {
    "xz": ".tar.xz",
    "zst": ".tar.zst",
}
DEFAULT_LEVELS = {"xz": 9, "zst": 22}


def create_xz_archive(source_dir: Path, output: Path, level: int = 9) -> None:
    with tarfile.open(output, "w:xz", preset=level) as tar:
        tar.add(source_dir, arcname=source_dir.name)


def create_zst_archive(source_dir: Path, output: Path, level: int = 22) -> None:
    try:
        import zstandard as zstd
    except ImportError as e:
        raise ImportError("zstandard module required!\n" "Install with: pip install zstandard") from e

    cctx = zstd.ZstdCompressor(level=level, threads=-1)
    with (
        open(output, "wb") as ofh,
        cctx.stream_writer(ofh, closefd=False) as compressor,
        tarfile.open(fileobj=compressor, mode="w|") as tar,
    ):
        tar.add(source_dir, arcname=source_dir.name)


def create_archive(
    source_dir: Path, output_dir: Path, name: str, fmt: str = "xz", level: int | None = None
) -> Path:
    """Compress source_dir into ``output_dir/<name>.tar.<fmt>``.

    Args:
        source_dir: Directory to archive; stored under its own name (e.g. ``emsdk/``)
        output_dir: Where the archive is written
        name: Archive base name, e.g. ``emsdk-ubuntu-latest``
        fmt: ``xz`` or ``zst``
        level: Compression level (default: 9 for xz, 22 for zst)

    Returns:
        Path to the created archive
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise SourceMissingError(source_dir, "Source directory")
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format {fmt!r} (expected one of {', '.join(FORMATS)})")
    if level is None:
        level = DEFAULT_LEVELS[fmt]

    output_dir.mkdir(parents=True, exist_ok=True)
    output = output_dir / f"{name}{FORMATS[fmt]}"

    print_section(f"CREATE ARCHIVE ({fmt.upper()} LEVEL {level})")
    print(f"Source: {source_dir}")
    print(f"Output: {output}")

    start = time.time()
    try:
        if fmt == "xz":
            create_xz_archive(source_dir, output, level)
        else:
            create_zst_archive(source_dir, output, level)
    except (KeyboardInterrupt, Exception):
        print("\n⚠️  Compression interrupted - cleaning up partial file...")
        output.unlink(missing_ok=True)
        raise

    elapsed = time.time() - start
    print(f"Created artifact: {output.name} ({format_size(get_file_size(output))}) in {elapsed:.1f}s")
    return output


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Archive an installed SDK directory")
    parser.add_argument("source_dir", type=Path, help="SDK directory to archive, e.g. .build/emsdk")
    parser.add_argument("--name", required=True, help="Archive base name, e.g. emsdk-ubuntu-latest")
    parser.add_argument("--format", choices=sorted(FORMATS), default="xz", help="Compression format (default: xz)")
    parser.add_argument("--level", type=int, help="Compression level (default: 9 for xz, 22 for zst)")
    parser.add_argument(
        "--output-dir", type=Path, default=None, help="Output directory (default: parent of source_dir)"
    )
    args = parser.parse_args(argv)

    output_dir = args.output_dir or args.source_dir.parent
    try:
        create_archive(args.source_dir, output_dir, args.name, args.format, args.level)
    except KeyboardInterrupt:
        print("\n❌ Packing cancelled by user")
        return 130
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
