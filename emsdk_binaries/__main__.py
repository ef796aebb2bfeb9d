"""
Entry point for running the package as a script.

Usage:
    python -m emsdk_binaries split .build/emsdk-ubuntu-latest.tar.xz
    python -m emsdk_binaries aggregate ./artifacts ./emsdk
"""

import sys

from . import aggregate, join_parts, manifest, pack, size_probe, split_archive

COMMANDS = {
    "pack": (pack.main, "Archive an installed SDK directory"),
    "split": (split_archive.main, "Split an archive that exceeds the size limit"),
    "verify": (manifest.main, "Check split parts against their manifest"),
    "reconstruct": (join_parts.main, "Rebuild an archive from its parts"),
    "aggregate": (aggregate.main, "Build the multi-platform release tree"),
    "probe": (size_probe.main, "Print file sizes"),
}


def usage() -> str:
    lines = ["Usage: emsdk-binaries <command> [options]", "", "Commands:"]
    lines.extend(f"  {name:<12} {help_text}" for name, (_, help_text) in COMMANDS.items())
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    if not argv or argv[0] in ("-h", "--help"):
        print(usage())
        return 0 if argv else 2
    command, rest = argv[0], argv[1:]
    if command not in COMMANDS:
        print(f"Unknown command: {command}\n", file=sys.stderr)
        print(usage(), file=sys.stderr)
        return 2
    return COMMANDS[command][0](rest)


if __name__ == "__main__":
    sys.exit(main())
