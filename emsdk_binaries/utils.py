"""Small helpers shared by the command-line tools."""

import hashlib
import os
from datetime import datetime, timezone
from pathlib import Path


def print_section(title: str) -> None:
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def get_file_hash(filepath: Path | str, algorithm: str = "sha256") -> str:
    """Calculate hash of a file."""
    h = hashlib.new(algorithm)
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(4096 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def strip_archive_extension(archive_name: str, extensions: tuple[str, ...]) -> tuple[str, str]:
    """Split ``name.tar.xz`` into ``("name", ".tar.xz")``.

    Returns the name unchanged and an empty extension when no known suffix matches.
    """
    for ext in extensions:
        if archive_name.endswith(ext) and len(archive_name) > len(ext):
            return archive_name[: -len(ext)], ext
    return archive_name, ""


def utc_timestamp(now: datetime | None = None) -> str:
    """Format a UTC timestamp for manifests and the index page.

    Honours SOURCE_DATE_EPOCH so that reproducible builds emit a fixed date.
    """
    if now is None:
        epoch = os.environ.get("SOURCE_DATE_EPOCH")
        if epoch:
            now = datetime.fromtimestamp(int(epoch), tz=timezone.utc)
        else:
            now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
