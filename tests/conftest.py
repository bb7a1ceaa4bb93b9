"""
Shared fixtures for docklock tests.

Provides:
- workdir: a temp directory that is also the current working directory
- fake_registry: a registry client that answers from memory and counts calls
- write_file: helper to create files under the working directory
"""

import asyncio
import hashlib
import os
from collections import Counter
from pathlib import Path

import pytest

from docklock.errors import RegistryError
from docklock.registry.base import RegistryClient


def fake_digest(name: str, tag: str) -> str:
    """Deterministic stand-in digest for name:tag"""
    return hashlib.sha256(f"{name}:{tag}".encode()).hexdigest()


class FakeRegistryClient(RegistryClient):
    """In-memory registry; unknown images resolve to fake_digest()"""

    def __init__(self, prefix: str = "", delay: float = 0):
        self.prefix = prefix
        self.delay = delay
        self.digests = {}
        self.missing = set()
        self.calls = Counter()
        self.closed = False

    async def digest(self, name: str, tag: str) -> str:
        self.calls[(name, tag)] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if (name, tag) in self.missing:
            raise RegistryError(f"image not found: '{name}:{tag}'")
        return self.digests.get((name, tag), fake_digest(name, tag))

    async def close(self):
        self.closed = True


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test inside tmp_path."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_registry():
    return FakeRegistryClient()


@pytest.fixture
def write_file(workdir):
    """Write a file relative to the working directory, creating parents."""
    def _write(path: str, content: str) -> Path:
        target = workdir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target
    return _write


@pytest.fixture(autouse=True)
def isolated_docker_env(monkeypatch):
    """Keep the host's Docker credentials and docklock settings out of tests."""
    for name in list(os.environ):
        if name.startswith("DOCKER_"):
            monkeypatch.delenv(name, raising=False)
