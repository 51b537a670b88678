"""Shared fixtures: every test gets its own home directory and an in-memory environment."""

from pathlib import Path

import pytest

from envx.backends import MemoryBackend
from envx.store import EnvStore


@pytest.fixture(autouse=True)
def envx_home(tmp_path: Path, monkeypatch) -> Path:
    home = tmp_path / "envx-home"
    monkeypatch.setenv("ENVX_HOME", str(home))
    return home


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> EnvStore:
    return EnvStore(backend=backend, environ={})
