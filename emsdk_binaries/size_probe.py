"""
Cross-platform file size queries.

``probe_size`` answers "how big is this file" with either a byte count or
``None``. A zero-byte file is a real answer; ``None`` means the size could not
be determined. Callers that need a size use ``get_file_size`` and get a
``SizeUnknownError`` instead of a silent 0.
"""

import os
import stat
import sys
from pathlib import Path

from .errors import SizeUnknownError


def probe_size(path: Path | str) -> int | None:
    """Return the size of a regular file in bytes, or None if unknown."""
    try:
        st = os.stat(path)
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return st.st_size


def get_file_size(path: Path | str) -> int:
    """Return the size of a regular file in bytes.

    Raises:
        SizeUnknownError: if the file is missing, not a regular file, or cannot be stat'ed
    """
    size = probe_size(path)
    if size is None:
        raise SizeUnknownError(path)
    return size


def format_size(bytes_size: int) -> str:
    """Format bytes as human-readable string."""
    mb = bytes_size / (1024 * 1024)
    return f"{mb:.2f} MB"


def main(argv: list[str] | None = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Print file sizes in bytes")
    parser.add_argument("paths", nargs="+", type=Path, help="Files to measure")
    args = parser.parse_args(argv)

    status = 0
    for path in args.paths:
        size = probe_size(path)
        if size is None:
            print(f"{path}: size unknown", file=sys.stderr)
            status = 1
        else:
            print(f"{path}: {size} bytes ({format_size(size)})")
    return status


if __name__ == "__main__":
    sys.exit(main())
