"""
Exception types raised by the packaging and publishing tools.

Each class maps to one failure category. The splitter and the reconstruction
procedure treat all of them as fatal for their unit of work; the aggregator
only ever reports ``SourceMissingError`` and ``UnrecognizedArtifactError`` as
warnings and keeps going with the remaining platforms.
"""

from pathlib import Path

# The reconstruction script ships standalone, so it defines its own errors.
from .join_parts import IncompletePartSetError, IntegrityError, ReconstructionError


class EmsdkBinariesError(Exception):
    """Base class for all errors raised by this package."""


class SourceMissingError(EmsdkBinariesError, FileNotFoundError):
    """A required input archive or producer directory does not exist."""

    def __init__(self, path: Path | str, what: str = "Archive"):
        self.path = Path(path)
        super().__init__(f"{what} not found: {self.path}")


class SizeUnknownError(EmsdkBinariesError, OSError):
    """The size of a file could not be determined."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"Could not determine size of {self.path}")


class CapExceededError(EmsdkBinariesError, RuntimeError):
    """A split part is still larger than the configured cap."""

    def __init__(self, part: Path | str, size: int, cap: int):
        self.part = Path(part)
        self.size = size
        self.cap = cap
        super().__init__(
            f"Split part {self.part.name} is {size:,} bytes, exceeding the {cap:,} byte limit "
            "(check the configured part size)"
        )


class UnrecognizedArtifactError(EmsdkBinariesError):
    """A producer directory holds neither a whole archive nor split parts."""

    def __init__(self, directory: Path | str, patterns: list[str]):
        self.directory = Path(directory)
        self.patterns = patterns
        super().__init__(f"No recognized artifact in {self.directory} (expected {' or '.join(patterns)})")


class ManifestError(EmsdkBinariesError, ValueError):
    """A manifest file does not follow the manifest contract."""
