import dataclasses
import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from emsdk_binaries import aggregate as aggregate_module
from emsdk_binaries.aggregate import (
    SplitArchive,
    WholeArchive,
    aggregate,
    classify_artifacts,
    file_type,
    main,
)
from emsdk_binaries.config import DEFAULT_PLATFORMS, MB, default_config, load_config
from emsdk_binaries.split_archive import package_archive

FIXED_TIME = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)
CAP = 1000


@pytest.fixture
def artifacts(tmp_path):
    path = tmp_path / "artifacts"
    path.mkdir()
    return path


@pytest.fixture
def output(tmp_path):
    return tmp_path / "site"


@pytest.fixture
def whole(make_file, artifacts):
    """Drop a complete archive into ``artifacts/emsdk-<artifact_name>/``."""

    def _make(artifact_name: str, size: int = 500, seed: int = 0) -> Path:
        return make_file(f"emsdk-{artifact_name}.tar.xz", size, seed, artifacts / f"emsdk-{artifact_name}")

    return _make


@pytest.fixture
def split(make_file, artifacts):
    """Drop a split archive set (parts, scripts, manifest) into ``artifacts/emsdk-<artifact_name>/``."""

    def _make(artifact_name: str, size: int = 2500, seed: int = 0):
        archive = make_file(f"emsdk-{artifact_name}.tar.xz", size, seed, artifacts / f"emsdk-{artifact_name}")
        return package_archive(archive, CAP, version="3.1.50", now=FIXED_TIME)

    return _make


def snapshot(root: Path) -> dict:
    tree = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_symlink():
            tree[rel] = ("link", os.readlink(path))
        elif path.is_file():
            tree[rel] = ("file", path.read_bytes())
        else:
            tree[rel] = ("dir", None)
    return tree


class TestFileType:
    @pytest.mark.parametrize(
        "name, label",
        [
            ("emsdk-ubuntu-latest.tar.xz", "Complete Archive"),
            ("emsdk-ubuntu-latest.tar.zst", "Complete Archive"),
            ("emsdk-ubuntu-latest.tar.xz.part001", "Split Archive Part"),
            ("emsdk-ubuntu-latest.tar.xz.part1234", "Split Archive Part"),
            ("emsdk-ubuntu-latest-reconstruct.py", "Reconstruction Script"),
            ("emsdk-ubuntu-latest-reconstruct.sh", "Reconstruction Script"),
            ("emsdk-ubuntu-latest-manifest.json", "Manifest File"),
            ("README.txt", None),
        ],
    )
    def test_labels(self, name, label):
        assert file_type(name) == label


class TestClassify:
    def test_whole_archive(self, whole, artifacts):
        archive = whole("ubuntu-latest")
        result = classify_artifacts(archive.parent, "emsdk")
        assert result == WholeArchive(archive, ".tar.xz")

    def test_whole_archive_in_nested_directory(self, make_file, artifacts):
        archive = make_file("emsdk-ubuntu-latest.tar.xz", 100, directory=artifacts / "emsdk-ubuntu-latest" / ".build")
        result = classify_artifacts(artifacts / "emsdk-ubuntu-latest", "emsdk")
        assert isinstance(result, WholeArchive)
        assert result.path == archive

    def test_split_archive(self, split):
        packaged = split("windows-latest")
        result = classify_artifacts(packaged.manifest_path.parent, "emsdk")
        assert isinstance(result, SplitArchive)
        assert [p.name for p in result.parts] == [p.name for p in packaged.split.parts]
        assert {p.name for p in result.scripts} == {s.name for s in packaged.scripts}
        assert [p.name for p in result.manifests] == [packaged.manifest_path.name]

    def test_whole_archive_wins_over_parts(self, whole, artifacts, capsys):
        archive = whole("ubuntu-latest")
        (archive.parent / "emsdk-ubuntu-latest.tar.xz.part001").write_bytes(b"stale")
        result = classify_artifacts(archive.parent, "emsdk")
        assert result == WholeArchive(archive, ".tar.xz")
        assert "both a complete archive and split parts" in capsys.readouterr().out

    def test_nothing_recognizable(self, artifacts):
        producer = artifacts / "emsdk-ubuntu-latest"
        producer.mkdir()
        (producer / "build.log").write_text("no archive here")
        assert classify_artifacts(producer, "emsdk") is None


class TestAggregate:
    def test_publishes_present_platforms_only(self, whole, split, artifacts, output):
        whole("ubuntu-latest")
        split("windows-latest")

        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert (output / "ubuntu" / "emsdk-ubuntu-latest.tar.xz").is_file()
        windows = sorted(p.name for p in (output / "windows").iterdir())
        assert windows == [
            "emsdk-windows-latest-manifest.json",
            "emsdk-windows-latest-reconstruct.py",
            "emsdk-windows-latest-reconstruct.sh",
            "emsdk-windows-latest.tar.xz.part001",
            "emsdk-windows-latest.tar.xz.part002",
            "emsdk-windows-latest.tar.xz.part003",
        ]
        assert not (output / "macos-x86_64").exists()
        assert not (output / "macos-arm64").exists()
        assert {r.spec.platform: bool(r.files) for r in result.platforms} == {
            "ubuntu": True,
            "macos-x86_64": False,
            "macos-arm64": False,
            "windows": True,
        }

    def test_index_lists_every_published_file(self, whole, split, artifacts, output):
        whole("ubuntu-latest")
        split("windows-latest")

        aggregate(artifacts, output, default_config(), now=FIXED_TIME)
        index = (output / "index.html").read_text(encoding="utf-8")

        assert index.count('class="platform-card"') == 2
        assert index.index("Ubuntu Linux") < index.index("Windows")
        assert "macOS" not in index.split('<div class="platforms">')[1].split('<div class="instructions">')[0]
        assert 'href="./ubuntu/emsdk-ubuntu-latest.tar.xz"' in index
        assert index.count("(Complete Archive)") == 1
        assert index.count("(Split Archive Part)") == 3
        assert index.count("(Reconstruction Script)") == 2
        assert index.count("(Manifest File)") == 1
        assert "Generated: 2024-05-01 12:30:00 UTC" in index

    def test_split_scripts_stay_executable(self, split, artifacts, output):
        split("windows-latest")
        aggregate(artifacts, output, default_config(), now=FIXED_TIME)
        if os.name != "nt":
            assert os.access(output / "windows" / "emsdk-windows-latest-reconstruct.sh", os.X_OK)

    def test_legacy_alias_points_at_canonical_archive(self, whole, artifacts, output):
        archive = whole("macos-arm64", seed=7)

        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        alias = output / "emsdk-macos-latest.tar.xz"
        assert alias.read_bytes() == archive.read_bytes()
        assert result.aliases == {"emsdk-macos-latest.tar.xz": "macos-arm64/emsdk-macos-arm64-latest.tar.xz"}
        if alias.is_symlink():
            assert os.readlink(alias) == "macos-arm64/emsdk-macos-arm64-latest.tar.xz"

    def test_alias_falls_back_to_copy(self, whole, artifacts, output, monkeypatch):
        archive = whole("macos-arm64", seed=7)

        def no_symlinks(*args, **kwargs):
            raise OSError("symlinks not permitted")

        monkeypatch.setattr(aggregate_module.os, "symlink", no_symlinks)
        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        alias = output / "emsdk-macos-latest.tar.xz"
        assert not alias.is_symlink()
        assert alias.read_bytes() == archive.read_bytes()

    @pytest.mark.parametrize("canonical", ["absent", "split"])
    def test_no_alias_without_complete_canonical_archive(self, split, whole, artifacts, output, canonical):
        whole("ubuntu-latest")
        if canonical == "split":
            split("macos-arm64")

        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert not (output / "emsdk-macos-latest.tar.xz").exists()
        assert not (output / "emsdk-macos-latest.tar.xz").is_symlink()
        assert result.aliases == {}

    def test_rerun_is_byte_identical(self, whole, split, artifacts, output):
        whole("ubuntu-latest")
        whole("macos-arm64", seed=3)
        split("windows-latest")

        aggregate(artifacts, output, default_config(), now=FIXED_TIME)
        first = snapshot(output)
        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert snapshot(output) == first

    def test_rerun_drops_platforms_that_disappeared(self, whole, artifacts, output):
        ubuntu = whole("ubuntu-latest")
        whole("windows-latest")
        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        ubuntu.unlink()
        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert not (output / "ubuntu").exists()
        assert (output / "index.html").read_text(encoding="utf-8").count('class="platform-card"') == 1

    def test_keeps_preserved_files(self, whole, artifacts, output):
        output.mkdir()
        (output / ".nojekyll").write_text("")
        (output / "CNAME").write_text("emsdk.example.com\n")
        (output / "old-file.txt").write_text("stale")
        whole("ubuntu-latest")

        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert (output / ".nojekyll").exists()
        assert (output / "CNAME").read_text() == "emsdk.example.com\n"
        assert not (output / "old-file.txt").exists()

    def test_unrecognized_platform_is_skipped(self, whole, artifacts, output, capsys):
        whole("ubuntu-latest")
        junk = artifacts / "emsdk-windows-latest"
        junk.mkdir()
        (junk / "build.log").write_text("failed")

        aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert not (output / "windows").exists()
        out = capsys.readouterr().out
        assert "No recognized artifact" in out
        assert "emsdk-*.tar.zst.part*" in out
        assert "*.tar.gz" in out

    def test_unreadable_producer_only_drops_that_platform(self, whole, artifacts, output, monkeypatch, capsys):
        whole("ubuntu-latest")
        whole("windows-latest")
        real_classify = aggregate_module.classify_artifacts

        def unreadable(directory, tool_name):
            if directory.name == "emsdk-windows-latest":
                raise PermissionError(13, "Permission denied", str(directory))
            return real_classify(directory, tool_name)

        monkeypatch.setattr(aggregate_module, "classify_artifacts", unreadable)
        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert (output / "ubuntu" / "emsdk-ubuntu-latest.tar.xz").is_file()
        assert not (output / "windows").exists()
        assert [r.spec.platform for r in result.platforms if r.files] == ["ubuntu"]
        assert "could not read" in capsys.readouterr().out

    def test_alias_copy_failure_is_not_fatal(self, whole, artifacts, output, monkeypatch):
        whole("macos-arm64")
        whole("ubuntu-latest")
        real_copyfile = aggregate_module.shutil.copyfile

        def no_symlinks(*args, **kwargs):
            raise OSError("symlinks not permitted")

        def copyfile(src, dst, *args, **kwargs):
            if Path(dst).parent == output:
                raise OSError("quota exceeded")
            return real_copyfile(src, dst, *args, **kwargs)

        monkeypatch.setattr(aggregate_module.os, "symlink", no_symlinks)
        monkeypatch.setattr(aggregate_module.shutil, "copyfile", copyfile)
        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert result.aliases == {}
        assert not (output / "emsdk-macos-latest.tar.xz").exists()
        assert (output / "index.html").exists()
        assert (output / "macos-arm64" / "emsdk-macos-arm64-latest.tar.xz").is_file()

    def test_publish_failure_only_drops_that_platform(self, whole, artifacts, output, monkeypatch):
        whole("ubuntu-latest")
        whole("windows-latest")
        real_publish = aggregate_module.publish_platform

        def flaky_publish(spec, artifacts_set, output_dir, config):
            if spec.platform == "windows":
                (output_dir / spec.platform).mkdir(parents=True)
                raise OSError("disk full")
            return real_publish(spec, artifacts_set, output_dir, config)

        monkeypatch.setattr(aggregate_module, "publish_platform", flaky_publish)
        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)

        assert (output / "ubuntu" / "emsdk-ubuntu-latest.tar.xz").is_file()
        assert not (output / "windows").exists()
        assert [r.spec.platform for r in result.platforms if r.files] == ["ubuntu"]

    def test_empty_artifacts_still_writes_index(self, artifacts, output):
        result = aggregate(artifacts, output, default_config(), now=FIXED_TIME)
        index = result.index_path.read_text(encoding="utf-8")
        assert 'class="platform-card"' not in index
        assert "Usage Instructions" in index

    def test_artifacts_inside_output_rejected(self, output):
        inner = output / "artifacts"
        inner.mkdir(parents=True)
        with pytest.raises(ValueError):
            aggregate(inner, output, default_config(), now=FIXED_TIME)

    def test_oversized_file_is_reported(self, whole, artifacts, output, capsys):
        whole("ubuntu-latest", size=2048)
        config = dataclasses.replace(default_config(), size_limit=1024)
        aggregate(artifacts, output, config, now=FIXED_TIME)
        assert "WARNING: emsdk-ubuntu-latest.tar.xz" in capsys.readouterr().out


class TestConfig:
    def test_defaults(self):
        config = load_config()
        assert config.platforms == DEFAULT_PLATFORMS
        assert config.legacy_aliases == {"macos": "macos-arm64"}
        assert config.size_limit == 95 * MB
        assert config.latest_name("ubuntu") == "emsdk-ubuntu-latest.tar.xz"

    def test_json_file(self, tmp_path):
        path = tmp_path / "platforms.json"
        path.write_text(
            json.dumps(
                {
                    "tool_name": "llvm",
                    "size_limit_mb": 50,
                    "platforms": [{"artifact_name": "linux-x86_64", "display_name": "Linux", "icon": "🐧"}],
                    "legacy_aliases": {},
                }
            ),
            encoding="utf-8",
        )
        config = load_config(path)
        assert config.tool_name == "llvm"
        assert config.size_limit == 50 * MB
        assert len(config.platforms) == 1
        assert config.platforms[0].platform == "linux-x86_64"
        assert config.legacy_aliases == {}
        assert config.producer_dir(tmp_path, config.platforms[0]) == tmp_path / "llvm-linux-x86_64"

    def test_tool_name_override(self):
        assert load_config(tool_name="custom").tool_name == "custom"

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"platforms": ["ubuntu"]},
            {"platforms": [{"display_name": "No artifact"}]},
            {"legacy_aliases": ["macos"]},
        ],
    )
    def test_bad_shapes(self, tmp_path, data):
        path = tmp_path / "platforms.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)


def test_main(whole, artifacts, output, capsys):
    whole("ubuntu-latest")
    assert main([str(artifacts), str(output)]) == 0
    assert (output / "index.html").exists()
    assert "Published 1 of 4 platforms" in capsys.readouterr().out


def test_main_bad_config(artifacts, output, tmp_path):
    config = tmp_path / "bad.json"
    config.write_text("[]")
    assert main([str(artifacts), str(output), "--config", str(config)]) == 1
