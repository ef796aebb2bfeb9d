#!/usr/bin/env python3
"""
Collect per-platform build artifacts into one publishable tree.

Each CI runner uploads an artifact directory named ``<tool>-<artifact_name>``
holding either one complete archive or a split set (parts, reconstruction
scripts, manifest). This tool turns those directories into:

    <output>/
        index.html
        <tool>-macos-latest.tar.xz -> macos-arm64/<tool>-macos-arm64-latest.tar.xz
        ubuntu/<tool>-ubuntu-latest.tar.xz
        windows/<tool>-windows-latest.tar.xz.part001
        windows/<tool>-windows-latest.tar.xz.part002
        windows/<tool>-windows-latest-reconstruct.py
        ...

Missing or unrecognized platforms are reported and skipped; the rest are
still published. The output directory is rebuilt from scratch on every run.
"""

import argparse
import html
import os
import shutil
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .config import ARCHIVE_EXTENSIONS, PRESERVED_FILES, DistributionConfig, PlatformSpec, load_config
from .errors import SourceMissingError, UnrecognizedArtifactError
from .size_probe import format_size, probe_size
from .utils import print_section, utc_timestamp

INDEX_NAME = "index.html"


# ============================================================================
# Artifact sets
# ============================================================================


@dataclass(frozen=True)
class WholeArchive:
    """A platform that produced one complete archive."""

    path: Path
    extension: str


@dataclass(frozen=True)
class SplitArchive:
    """A platform whose archive was split into parts."""

    parts: tuple[Path, ...]
    scripts: tuple[Path, ...] = ()
    manifests: tuple[Path, ...] = ()

    @property
    def files(self) -> tuple[Path, ...]:
        return self.parts + self.scripts + self.manifests


PlatformArtifactSet = WholeArchive | SplitArchive


@dataclass
class PlatformResult:
    spec: PlatformSpec
    files: list[str] = field(default_factory=list)


@dataclass
class AggregationResult:
    platforms: list[PlatformResult]
    aliases: dict[str, str]  # alias file name -> relative target
    index_path: Path


def archive_extension(name: str) -> str | None:
    """Return the compression suffix if name is a complete archive."""
    for ext in ARCHIVE_EXTENSIONS:
        if name.endswith(ext) and len(name) > len(ext):
            return ext
    return None


def is_part(name: str) -> bool:
    return any(f"{ext}.part" in name for ext in ARCHIVE_EXTENSIONS)


def artifact_patterns(tool_name: str) -> list[str]:
    """Glob patterns a producer directory is expected to match."""
    wholes = [f"*{ext}" for ext in ARCHIVE_EXTENSIONS]
    parts = [f"{tool_name}-*{ext}.part*" for ext in ARCHIVE_EXTENSIONS]
    return wholes + parts


def file_type(name: str) -> str | None:
    """Label shown next to a file in the index, derived from its name only."""
    if archive_extension(name):
        return "Complete Archive"
    if is_part(name):
        return "Split Archive Part"
    if "-reconstruct." in name:
        return "Reconstruction Script"
    if "-manifest." in name:
        return "Manifest File"
    return None


def classify_artifacts(directory: Path, tool_name: str) -> PlatformArtifactSet | None:
    """Decide what a producer directory holds.

    A complete archive wins over split parts when both are present.

    Returns:
        WholeArchive, SplitArchive, or None when nothing recognizable is there
    """
    files = sorted((p for p in directory.rglob("*") if p.is_file()), key=lambda p: p.name)
    prefix = f"{tool_name}-"

    wholes = [p for p in files if archive_extension(p.name)]
    parts = [p for p in files if p.name.startswith(prefix) and is_part(p.name)]

    if wholes:
        if len(wholes) > 1:
            print(f"⚠️  Several archives in {directory}, using {wholes[0].name}")
        if parts:
            print(f"⚠️  {directory} holds both a complete archive and split parts, using the complete archive")
        return WholeArchive(wholes[0], archive_extension(wholes[0].name))

    if parts:
        scripts = tuple(p for p in files if p.name.startswith(prefix) and "-reconstruct." in p.name)
        manifests = tuple(p for p in files if p.name.startswith(prefix) and "-manifest." in p.name)
        if not scripts:
            print(f"⚠️  No reconstruction script next to the parts in {directory}")
        if not manifests:
            print(f"⚠️  No manifest next to the parts in {directory}")
        return SplitArchive(tuple(parts), scripts, manifests)

    return None


# ============================================================================
# Publishing
# ============================================================================


def clean_output_dir(output_dir: Path) -> None:
    """Empty output_dir, keeping PRESERVED_FILES at its top level."""
    if not output_dir.exists():
        return
    for child in output_dir.iterdir():
        if child.name in PRESERVED_FILES:
            continue
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def publish_platform(
    spec: PlatformSpec, artifacts: PlatformArtifactSet, output_dir: Path, config: DistributionConfig
) -> list[str]:
    """Copy one platform's artifacts into ``output_dir/<platform>/``.

    Returns:
        Published file names in publication order
    """
    platform_dir = output_dir / spec.platform
    platform_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(artifacts, WholeArchive):
        name = config.latest_name(spec.platform, artifacts.extension)
        shutil.copyfile(artifacts.path, platform_dir / name)
        print(f"  Copied {artifacts.path.name} -> {spec.platform}/{name}")
        return [name]

    published = []
    for src in artifacts.files:
        shutil.copyfile(src, platform_dir / src.name)
        if os.access(src, os.X_OK):
            os.chmod(platform_dir / src.name, 0o755)
        published.append(src.name)
    print(f"  Copied {len(artifacts.parts)} split parts and {len(published) - len(artifacts.parts)} support files")
    return published


def collect_platform(
    spec: PlatformSpec, artifacts_dir: Path, output_dir: Path, config: DistributionConfig
) -> PlatformResult:
    """Classify and publish one platform; never raises for a missing or odd producer."""
    result = PlatformResult(spec)
    producer_dir = config.producer_dir(artifacts_dir, spec)
    print(f"\nProcessing {spec.artifact_name} -> {spec.platform} ({spec.display_name})")

    try:
        if not producer_dir.is_dir():
            raise SourceMissingError(producer_dir, "Artifact directory")
        artifacts = classify_artifacts(producer_dir, config.tool_name)
        if artifacts is None:
            raise UnrecognizedArtifactError(producer_dir, artifact_patterns(config.tool_name))
    except (SourceMissingError, UnrecognizedArtifactError) as e:
        print(f"  Skipping: {e}")
        return result
    except OSError as e:
        print(f"  ⚠️  Skipping {spec.platform}: could not read {producer_dir}: {e}")
        return result

    kind = "single archive" if isinstance(artifacts, WholeArchive) else "split archive parts"
    print(f"  Found {kind}")

    try:
        result.files = publish_platform(spec, artifacts, output_dir, config)
    except OSError as e:
        print(f"  ❌ Failed to publish {spec.platform}: {e}", file=sys.stderr)
        shutil.rmtree(output_dir / spec.platform, ignore_errors=True)
        result.files = []
    return result


def create_legacy_aliases(output_dir: Path, config: DistributionConfig) -> dict[str, str]:
    """Point ``<tool>-<legacy>-latest.<ext>`` at the canonical platform's archive.

    An alias is only created when the canonical platform published a complete
    archive. Hosts that refuse symlinks get a byte copy instead.
    """
    aliases = {}
    for legacy, canonical in sorted(config.legacy_aliases.items()):
        for ext in ARCHIVE_EXTENSIONS:
            target_name = config.latest_name(canonical, ext)
            target = output_dir / canonical / target_name
            if not target.is_file():
                continue

            alias = output_dir / config.latest_name(legacy, ext)
            relative_target = f"{canonical}/{target_name}"
            alias.unlink(missing_ok=True)
            try:
                os.symlink(relative_target, alias)
                print(f"Created legacy symlink: {alias.name} -> {relative_target}")
            except (OSError, NotImplementedError):
                try:
                    shutil.copyfile(target, alias)
                except OSError as e:
                    alias.unlink(missing_ok=True)
                    print(f"⚠️  Could not create legacy alias {alias.name}: {e}", file=sys.stderr)
                    break
                print(f"Created legacy copy: {alias.name} (copy of {relative_target})")
            aliases[alias.name] = relative_target
            break
        else:
            print(f"No complete {canonical} archive - skipping legacy alias for {legacy}")
    return aliases


# ============================================================================
# Index page
# ============================================================================

INDEX_STYLE = """\
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               max-width: 1200px; margin: 0 auto; padding: 20px; line-height: 1.6; color: #333; background: #f5f5f5; }
        .header { text-align: center; background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
                  color: white; padding: 2rem; border-radius: 10px; margin-bottom: 2rem; }
        .platforms { display: grid; grid-template-columns: repeat(auto-fit, minmax(300px, 1fr)); gap: 1.5rem; }
        .platform-card { background: white; border-radius: 10px; padding: 1.5rem; border: 1px solid #e1e5e9; }
        .file-list { list-style: none; padding: 0; }
        .file-list li { background: #f8f9fa; border: 1px solid #e9ecef; border-radius: 5px; margin: 0.5rem 0; }
        .file-link { display: block; padding: 0.75rem 1rem; text-decoration: none; color: #495057; }
        .file-type { font-size: 0.8rem; color: #6c757d; }
        .instructions { background: white; border-radius: 10px; padding: 1.5rem; margin-top: 2rem;
                        border-left: 4px solid #28a745; }
        .instructions pre { background: #f8f9fa; padding: 1rem; border-radius: 5px; overflow-x: auto; }
        .timestamp { font-size: 0.9rem; opacity: 0.9; }"""


def render_file_entry(platform: str, name: str) -> str:
    label = file_type(name)
    annotation = f' <span class="file-type">({label})</span>' if label else ""
    href = html.escape(f"./{platform}/{name}", quote=True)
    return f'                <li><a href="{href}" class="file-link">{html.escape(name)}{annotation}</a></li>'


def render_platform_card(result: PlatformResult) -> str:
    spec = result.spec
    lines = [
        '        <div class="platform-card">',
        f'            <h2><span class="platform-icon">{html.escape(spec.icon)}</span> '
        f"{html.escape(spec.display_name)}</h2>",
        '            <ul class="file-list">',
    ]
    lines.extend(render_file_entry(spec.platform, name) for name in result.files)
    lines.append("            </ul>")
    lines.append("        </div>")
    return "\n".join(lines)


def render_instructions(tool: str) -> str:
    t = html.escape(tool)
    return f"""\
    <div class="instructions">
        <h2>Usage Instructions</h2>
        <h3>For Complete Archives (.tar.xz files):</h3>
        <pre><code># Download the archive for your platform, then extract it
tar -xJf {t}-[platform]-latest.tar.xz
cd {t}
source ./{t}_env.sh</code></pre>

        <h3>For Split Archives (part files):</h3>
        <p>Archives over the hosting size limit are split into numbered parts.
        Download every part, the reconstruction script and the manifest into one directory:</p>
        <pre><code>python {t}-[platform]-latest-reconstruct.py
# or: bash {t}-[platform]-latest-reconstruct.sh
tar -xJf {t}-[platform]-latest.tar.xz</code></pre>

        <h3>Manual Reconstruction (Alternative):</h3>
        <pre><code>cat {t}-[platform]-latest.tar.xz.part* &gt; {t}-[platform]-latest.tar.xz
tar -xJf {t}-[platform]-latest.tar.xz</code></pre>
    </div>"""


def render_index(results: list[PlatformResult], config: DistributionConfig, generated: str) -> str:
    """Render index.html for every platform that published files, sorted by platform key."""
    cards = [render_platform_card(r) for r in sorted(results, key=lambda r: r.spec.platform) if r.files]
    title = html.escape(config.site_title)
    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '    <meta charset="UTF-8">',
            '    <meta name="viewport" content="width=device-width, initial-scale=1.0">',
            f"    <title>{title}</title>",
            "    <style>",
            INDEX_STYLE,
            "    </style>",
            "</head>",
            "<body>",
            '    <div class="header">',
            f"        <h1>{title}</h1>",
            f'        <div class="timestamp">Generated: {html.escape(generated)}</div>',
            "    </div>",
            "",
            '    <div class="platforms">',
            *cards,
            "    </div>",
            "",
            render_instructions(config.tool_name),
            "</body>",
            "</html>",
            "",
        ]
    )


def write_index(output_dir: Path, results: list[PlatformResult], config: DistributionConfig, now=None) -> Path:
    index_path = output_dir / INDEX_NAME
    with open(index_path, "w", encoding="utf-8", newline="\n") as f:
        f.write(render_index(results, config, utc_timestamp(now)))
    return index_path


def report_sizes(output_dir: Path, results: list[PlatformResult], size_limit: int) -> list[str]:
    """Print every published file's size and return the ones over size_limit."""
    print_section("FILE SIZE SUMMARY")
    oversized = []
    for result in sorted(results, key=lambda r: r.spec.platform):
        if not result.files:
            continue
        print(f"Platform: {result.spec.platform}")
        for name in result.files:
            size = probe_size(output_dir / result.spec.platform / name)
            if size is None:
                print(f"  {name} = size unknown")
                continue
            print(f"  {name} = {format_size(size)}")
            if size > size_limit:
                print(f"  ⚠️  WARNING: {name} is {format_size(size)}, over the {format_size(size_limit)} limit!")
                oversized.append(f"{result.spec.platform}/{name}")
    return oversized


# ============================================================================
# Main Pipeline
# ============================================================================


def aggregate(
    artifacts_dir: Path, output_dir: Path, config: DistributionConfig, now: datetime | None = None
) -> AggregationResult:
    """Build the published tree and index from whatever artifacts are present.

    Args:
        artifacts_dir: Directory holding one ``<tool>-<artifact_name>`` directory per producer
        output_dir: Tree to (re)generate
        config: Platform table and legacy aliases
        now: Timestamp for the index page (default: SOURCE_DATE_EPOCH or the current time)
    """
    artifacts_dir = Path(artifacts_dir)
    output_dir = Path(output_dir)
    if artifacts_dir.resolve().is_relative_to(output_dir.resolve()):
        raise ValueError(f"Artifacts directory {artifacts_dir} must not be inside the output directory {output_dir}")

    print_section("PREPARE ARTIFACTS FOR DEPLOYMENT")
    clean_output_dir(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    results = [collect_platform(spec, artifacts_dir, output_dir, config) for spec in config.platforms]

    print()
    aliases = create_legacy_aliases(output_dir, config)

    print("\nGenerating index.html...")
    index_path = write_index(output_dir, results, config, now)

    report_sizes(output_dir, results, config.size_limit)

    published = [r for r in results if r.files]
    print_section("DONE")
    print(f"Published {len(published)} of {len(results)} platforms to {output_dir}")
    for path in sorted(p.relative_to(output_dir).as_posix() for p in output_dir.rglob("*")):
        print(f"  {path}")

    return AggregationResult(results, aliases, index_path)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Collect per-platform artifacts into a publishable tree with an index page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # After actions/download-artifact into ./artifacts
  python -m emsdk_binaries aggregate ./artifacts ./emsdk

  # Custom platform table
  python -m emsdk_binaries aggregate ./artifacts ./site --config platforms.json
""",
    )
    parser.add_argument("artifacts_dir", type=Path, help="Directory of downloaded per-platform artifacts")
    parser.add_argument("output_dir", type=Path, help="Directory to publish (regenerated on every run)")
    parser.add_argument("--config", type=Path, help="JSON file with the platform table and legacy aliases")
    parser.add_argument("--tool", help="Tool name prefix of artifact directories and files (default: emsdk)")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config, tool_name=args.tool)
        aggregate(args.artifacts_dir, args.output_dir, config)
    except KeyboardInterrupt:
        print("\n❌ Aggregation cancelled by user")
        return 130
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
