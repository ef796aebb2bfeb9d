import lzma
import random
from pathlib import Path

import pytest


def random_bytes(size: int, seed: int = 0) -> bytes:
    return random.Random(seed).randbytes(size)


@pytest.fixture
def make_file(tmp_path: Path):
    """Write ``size`` deterministic pseudo-random bytes to ``tmp_path / name``."""

    def _make(name: str, size: int, seed: int = 0, directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_bytes(random_bytes(size, seed))
        return path

    return _make


@pytest.fixture
def make_xz_archive(tmp_path: Path):
    """Write a real xz stream so integrity checks have something to decode."""

    def _make(name: str, payload_size: int = 64 * 1024, seed: int = 1, directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        # preset 0 on random data keeps the stream about as large as the payload
        path.write_bytes(lzma.compress(random_bytes(payload_size, seed), preset=0))
        return path

    return _make
