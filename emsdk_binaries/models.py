"""
Data types passed between the splitter, manifest writer and aggregator.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

MANIFEST_VERSION = 1


@dataclass(frozen=True)
class ArchivePart:
    """One bounded-size slice of a split archive."""

    archive_name: str
    index: int  # 1-based position in the archive
    path: Path
    size: int
    sha256: str

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class SplitResult:
    """The ordered parts produced from one archive."""

    archive_path: Path
    part_size: int
    total_size: int
    sha256: str
    parts: list[ArchivePart] = field(default_factory=list)

    @property
    def archive_name(self) -> str:
        return self.archive_path.name

    @property
    def part_count(self) -> int:
        return len(self.parts)


@dataclass
class Manifest:
    """Description of a split archive, written as ``<base>-manifest.json``.

    Field names are a versioned contract; bump MANIFEST_VERSION when they change.
    """

    archive: str
    version: str
    split_date: str
    compression: str
    split_size: int
    total_parts: int
    total_size: int
    sha256: str
    parts: list[dict[str, Any]]
    instructions: list[str] = field(default_factory=list)
    manifest_version: int = MANIFEST_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifest_version": self.manifest_version,
            "archive": self.archive,
            "version": self.version,
            "split_date": self.split_date,
            "compression": self.compression,
            "split_size": self.split_size,
            "total_parts": self.total_parts,
            "total_size": self.total_size,
            "sha256": self.sha256,
            "parts": self.parts,
            "instructions": self.instructions,
        }


@dataclass
class PackageResult:
    """Everything written when an oversized archive is packaged for hosting."""

    split: SplitResult
    manifest_path: Path
    scripts: list[Path]

    @property
    def files(self) -> list[Path]:
        return [p.path for p in self.split.parts] + self.scripts + [self.manifest_path]
