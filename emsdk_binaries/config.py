"""
Configuration for splitting and publishing Emscripten SDK archives.

Defaults match the CI matrix that produces one archive per runner. A JSON file
with the same shape can replace the platform table:

    {
      "tool_name": "emsdk",
      "size_limit_mb": 95,
      "platforms": [
        {"artifact_name": "ubuntu-latest", "platform": "ubuntu",
         "display_name": "Ubuntu Linux", "icon": "🐧"}
      ],
      "legacy_aliases": {"macos": "macos-arm64"},
      "site_title": "Emscripten SDK Artifacts"
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ============================================================================
# Constants
# ============================================================================

TOOL_NAME = "emsdk"

# GitHub rejects files over 100 MB; parts stay under 95 MB to leave headroom.
GITHUB_FILE_LIMIT_MB = 100
DEFAULT_PART_SIZE_MB = 95
MB = 1024 * 1024

# Zero-padded decimal part suffixes, at least this many digits wide.
PART_SUFFIX_MIN_WIDTH = 3

# Compression suffixes recognized as a complete archive, longest match first.
ARCHIVE_EXTENSIONS = (".tar.xz", ".tar.zst", ".tar.gz")

COMPRESSION_NAMES = {
    ".tar.xz": "tar.xz",
    ".tar.zst": "tar.zst",
    ".tar.gz": "tar.gz",
}

EXTRACT_COMMANDS = {
    ".tar.xz": "tar -xJf",
    ".tar.zst": "tar --zstd -xf",
    ".tar.gz": "tar -xzf",
}

DEFAULT_SITE_TITLE = "Emscripten SDK Artifacts"

# Files in the output directory that survive a regeneration.
PRESERVED_FILES = (".nojekyll", "CNAME")


# ============================================================================
# Platform table
# ============================================================================


@dataclass(frozen=True)
class PlatformSpec:
    """One producer of artifacts and where its files are published."""

    artifact_name: str  # CI artifact key, e.g. "ubuntu-latest"
    platform: str  # published key, e.g. "ubuntu"
    display_name: str
    icon: str = "💻"


@dataclass(frozen=True)
class DistributionConfig:
    """Everything the aggregator needs to know for one run."""

    tool_name: str = TOOL_NAME
    platforms: tuple[PlatformSpec, ...] = ()
    # legacy platform key -> canonical platform key
    legacy_aliases: dict[str, str] = field(default_factory=dict)
    size_limit: int = DEFAULT_PART_SIZE_MB * MB
    site_title: str = DEFAULT_SITE_TITLE

    def producer_dir(self, artifacts_dir: Path, spec: PlatformSpec) -> Path:
        return artifacts_dir / f"{self.tool_name}-{spec.artifact_name}"

    def latest_name(self, platform: str, extension: str = ".tar.xz") -> str:
        return f"{self.tool_name}-{platform}-latest{extension}"


DEFAULT_PLATFORMS = (
    PlatformSpec("ubuntu-latest", "ubuntu", "Ubuntu Linux", "🐧"),
    PlatformSpec("macos-x86_64", "macos-x86_64", "macOS Intel (x86_64)", "🍎"),
    PlatformSpec("macos-arm64", "macos-arm64", "macOS Apple Silicon (ARM64)", "🍎"),
    PlatformSpec("windows-latest", "windows", "Windows", "🪟"),
)

# Older installers still download the un-suffixed macOS archive.
DEFAULT_LEGACY_ALIASES = {"macos": "macos-arm64"}


def default_config(tool_name: str = TOOL_NAME) -> DistributionConfig:
    return DistributionConfig(
        tool_name=tool_name,
        platforms=DEFAULT_PLATFORMS,
        legacy_aliases=dict(DEFAULT_LEGACY_ALIASES),
    )


def _parse_platform(entry: Any) -> PlatformSpec:
    if not isinstance(entry, dict):
        raise ValueError(f"Platform entry must be an object, got: {entry!r}")
    try:
        artifact_name = entry["artifact_name"]
    except KeyError as e:
        raise ValueError(f"Platform entry is missing 'artifact_name': {entry!r}") from e
    platform = entry.get("platform", artifact_name)
    return PlatformSpec(
        artifact_name=artifact_name,
        platform=platform,
        display_name=entry.get("display_name", platform),
        icon=entry.get("icon", "💻"),
    )


def load_config(path: Path | str | None = None, tool_name: str | None = None) -> DistributionConfig:
    """Load the distribution config, falling back to the built-in table.

    Args:
        path: Optional JSON file overriding any of the default keys
        tool_name: Overrides ``tool_name`` from the file and the defaults

    Returns:
        The resolved DistributionConfig
    """
    config = default_config()
    data: dict[str, Any] = {}

    if path is not None:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")

    platforms = config.platforms
    if "platforms" in data:
        platforms = tuple(_parse_platform(entry) for entry in data["platforms"])

    legacy_aliases = data.get("legacy_aliases", config.legacy_aliases)
    if not isinstance(legacy_aliases, dict):
        raise ValueError("'legacy_aliases' must map legacy platform names to canonical ones")

    size_limit = config.size_limit
    if "size_limit_mb" in data:
        size_limit = int(data["size_limit_mb"]) * MB

    return DistributionConfig(
        tool_name=tool_name or data.get("tool_name", config.tool_name),
        platforms=platforms,
        legacy_aliases=dict(legacy_aliases),
        size_limit=size_limit,
        site_title=data.get("site_title", config.site_title),
    )
