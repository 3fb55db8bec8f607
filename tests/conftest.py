"""
Pytest configuration and shared fixtures for nepaltools tests.
"""

import itertools

import pytest

from nepaltools.storage import file_store as file_store_module
from nepaltools.storage.backends import MemoryBackend
from nepaltools.storage.file_store import FileStore

MIB = 1024 * 1024


@pytest.fixture
def memory_backend() -> MemoryBackend:
    """An empty in-memory backend with the fallback quota."""
    return MemoryBackend()


@pytest.fixture
async def store(memory_backend: MemoryBackend) -> FileStore:
    """An initialized store on an in-memory backend."""
    file_store = FileStore(memory_backend)
    await file_store.init()
    return file_store


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch):
    """Makes the store's timestamps strictly increasing, one millisecond per call."""
    ticks = itertools.count(1_700_000_000_000)
    monkeypatch.setattr(file_store_module, "now_ms", lambda: next(ticks))
    return ticks


@pytest.fixture
def sample_pdf() -> bytes:
    return b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\n%%EOF\n"


@pytest.fixture
def sample_png() -> bytes:
    return b"\x89PNG\r\n\x1a\n" + bytes(range(256))
