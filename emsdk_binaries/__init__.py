"""
Packaging and publishing tools for prebuilt Emscripten SDK archives.

This package provides tools for:
- Archiving an installed SDK directory as .tar.xz or .tar.zst
- Splitting archives that exceed the hosting size limit into numbered parts
- Writing a manifest and standalone reconstruction scripts for split archives
- Collecting per-platform artifacts into a published tree with an index page

Main modules:
- pack: Create the compressed archive
- split_archive: Split oversized archives (parts, manifest, reconstruction scripts)
- join_parts: Standalone reconstruction procedure shipped next to the parts
- manifest: Write, read and verify manifests
- aggregate: Build the multi-platform release tree and index.html
"""

from .aggregate import main as aggregate_main
from .split_archive import main as split_archive_main

__version__ = "1.0.0"

__all__ = ["aggregate_main", "split_archive_main"]
