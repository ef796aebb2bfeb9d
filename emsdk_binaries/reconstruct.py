"""
Write the reconstruction scripts that ship next to split archive parts.

Two scripts are written for every split archive:

- ``<base>-reconstruct.py``: a verbatim copy of ``join_parts.py``. It derives
  the archive name from its own file name, so one source serves every archive.
- ``<base>-reconstruct.sh``: the same procedure in bash, for hosts without Python.
"""

import contextlib
import os
from pathlib import Path

from . import join_parts
from .config import ARCHIVE_EXTENSIONS
from .utils import strip_archive_extension

PYTHON_SCRIPT_SUFFIX = "-reconstruct.py"
SHELL_SCRIPT_SUFFIX = "-reconstruct.sh"

# Extension -> (test command, extract command); ``sort`` runs under LC_ALL=C.
SHELL_TOOLS = {
    ".tar.xz": ("xz -t", "tar -xJf"),
    ".tar.zst": ("zstd -t -q", "tar --zstd -xf"),
    ".tar.gz": ("gzip -t", "tar -xzf"),
}

SHELL_TEMPLATE = """#!/bin/bash
# Reconstruct {archive_name} from its split parts.
# Generated alongside the parts; the archive name comes from this script's name.

set -e

SCRIPT_DIR="$(cd "$(dirname "${{BASH_SOURCE[0]}}")" && pwd)"
cd "$SCRIPT_DIR"

SCRIPT_NAME="$(basename "$0")"
BASE_NAME="${{SCRIPT_NAME%{suffix}}}"
ARCHIVE_NAME="${{BASE_NAME}}{extension}"

echo "Reconstructing ${{ARCHIVE_NAME}} from split parts..."

PARTS=()
while IFS= read -r part; do
    PARTS+=("$part")
done < <(for f in "${{ARCHIVE_NAME}}".part*; do [ -f "$f" ] && printf '%s\\n' "$f"; done | LC_ALL=C sort)

if [ ${{#PARTS[@]}} -eq 0 ]; then
    echo "ERROR: No split parts found matching pattern ${{ARCHIVE_NAME}}.part* in $SCRIPT_DIR" >&2
    exit 1
fi

echo "Found ${{#PARTS[@]}} parts to reconstruct"

if ! cat "${{PARTS[@]}}" > "$ARCHIVE_NAME"; then
    rm -f "$ARCHIVE_NAME"
    echo "ERROR: Failed to reconstruct archive" >&2
    exit 1
fi

echo "Successfully reconstructed: $ARCHIVE_NAME"

TEST_TOOL="{test_command}"
if command -v "${{TEST_TOOL%% *}}" >/dev/null 2>&1; then
    if $TEST_TOOL "$ARCHIVE_NAME"; then
        echo "Archive integrity verified"
    else
        rm -f "$ARCHIVE_NAME"
        echo "ERROR: Archive integrity check failed for $ARCHIVE_NAME: the parts are corrupted or incomplete" >&2
        exit 2
    fi
else
    echo "WARNING: Could not verify archive integrity (${{TEST_TOOL%% *}} command not available)"
fi

echo ""
echo "To extract:"
echo "  {extract_command} $ARCHIVE_NAME"
echo ""
echo "Optional: Remove split parts after successful reconstruction:"
printf "  rm"
for part in "${{PARTS[@]}}"; do
    printf " '%s'" "$part"
done
echo ""
"""


def script_name(base: str, suffix: str = PYTHON_SCRIPT_SUFFIX) -> str:
    return f"{base}{suffix}"


def _make_executable(path: Path) -> None:
    # Make it executable on Unix-like systems
    with contextlib.suppress(OSError):
        os.chmod(path, 0o755)


def python_script_source() -> str:
    """Source of the standalone reconstruction script."""
    return Path(join_parts.__file__).read_text(encoding="utf-8")


def shell_script_source(archive_name: str) -> str:
    _, ext = strip_archive_extension(archive_name, ARCHIVE_EXTENSIONS)
    if not ext:
        raise ValueError(f"Unsupported archive type: {archive_name} (expected one of {', '.join(ARCHIVE_EXTENSIONS)})")
    test_command, extract_command = SHELL_TOOLS[ext]
    return SHELL_TEMPLATE.format(
        archive_name=archive_name,
        suffix=SHELL_SCRIPT_SUFFIX,
        extension=ext,
        test_command=test_command,
        extract_command=extract_command,
    )


def emit_python_script(base: str, output_dir: Path) -> Path:
    path = output_dir / script_name(base, PYTHON_SCRIPT_SUFFIX)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(python_script_source())
    _make_executable(path)
    return path


def emit_shell_script(base: str, archive_name: str, output_dir: Path) -> Path:
    path = output_dir / script_name(base, SHELL_SCRIPT_SUFFIX)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(shell_script_source(archive_name))
    _make_executable(path)
    return path


def emit_reconstruction_scripts(archive_name: str, output_dir: Path) -> list[Path]:
    """Write both reconstruction scripts for archive_name into output_dir.

    Either both scripts are written or neither is left behind.

    Returns:
        Paths of the scripts written, Python first
    """
    base, ext = strip_archive_extension(archive_name, ARCHIVE_EXTENSIONS)
    if not ext:
        raise ValueError(f"Unsupported archive type: {archive_name} (expected one of {', '.join(ARCHIVE_EXTENSIONS)})")
    written = [emit_python_script(base, output_dir)]
    try:
        written.append(emit_shell_script(base, archive_name, output_dir))
    except (KeyboardInterrupt, Exception):
        for path in written:
            path.unlink(missing_ok=True)
        raise
    return written
