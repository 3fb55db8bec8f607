"""Tests for the key-value backends."""

from pathlib import Path

import pytest

from nepaltools.exceptions import BackendIOError
from nepaltools.models.config import BackendKind
from nepaltools.storage.backends import (
    FALLBACK_QUOTA_BYTES,
    SQLITE_QUOTA_BYTES,
    JsonFileBackend,
    KeyValueBackend,
    MemoryBackend,
    SqliteBackend,
    create_backend,
)


@pytest.fixture(params=["memory", "json", "sqlite"])
def backend(request: pytest.FixtureRequest, tmp_path: Path) -> KeyValueBackend:
    """Each concrete backend, backed by a temporary directory where needed."""
    return create_backend(request.param, tmp_path)


class TestBackendContract:
    """Behaviour every backend must share."""

    async def test_missing_key_is_none(self, backend: KeyValueBackend) -> None:
        assert await backend.get("absent") is None

    async def test_set_then_get(self, backend: KeyValueBackend) -> None:
        value = {"a": 1, "nested": {"list": [1, "two", None]}, "flag": True}
        await backend.set("doc", value)
        assert await backend.get("doc") == value

    async def test_overwrite(self, backend: KeyValueBackend) -> None:
        await backend.set("k", [1])
        await backend.set("k", [2])
        assert await backend.get("k") == [2]

    async def test_returned_values_are_copies(self, backend: KeyValueBackend) -> None:
        await backend.set("k", {"items": []})
        value = await backend.get("k")
        value["items"].append("mutated")
        assert await backend.get("k") == {"items": []}

    async def test_remove_single_and_many(self, backend: KeyValueBackend) -> None:
        for key in ("a", "b", "c"):
            await backend.set(key, key)
        await backend.remove("a")
        await backend.remove(["b", "missing"])
        assert await backend.get("a") is None
        assert await backend.get("b") is None
        assert await backend.get("c") == "c"

    async def test_clear(self, backend: KeyValueBackend) -> None:
        await backend.set("a", 1)
        await backend.set("b", 2)
        await backend.clear()
        assert await backend.get("a") is None
        assert await backend.get("b") is None

    async def test_unserializable_value_raises(self, backend: KeyValueBackend) -> None:
        with pytest.raises(BackendIOError):
            await backend.set("k", {"raw": b"bytes"})
        assert await backend.get("k") is None


class TestBackendSelection:
    """Tests for create_backend and the per-backend quotas."""

    def test_kinds(self, tmp_path: Path) -> None:
        assert isinstance(create_backend(BackendKind.SQLITE, tmp_path), SqliteBackend)
        assert isinstance(create_backend("json", tmp_path), JsonFileBackend)
        assert isinstance(create_backend("memory", tmp_path), MemoryBackend)

    def test_unknown_kind(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            create_backend("redis", tmp_path)

    def test_default_quotas(self, tmp_path: Path) -> None:
        assert SqliteBackend(tmp_path).quota_bytes == SQLITE_QUOTA_BYTES
        assert JsonFileBackend(tmp_path).quota_bytes == FALLBACK_QUOTA_BYTES
        assert MemoryBackend().quota_bytes == FALLBACK_QUOTA_BYTES

    def test_quota_override(self) -> None:
        assert MemoryBackend(quota_bytes=1234).quota_bytes == 1234


class TestJsonFileBackend:
    """Tests specific to the JSON file backend."""

    async def test_one_file_per_key(self, tmp_path: Path) -> None:
        backend = JsonFileBackend(tmp_path)
        await backend.set("nepaltools_stats", {"totalFiles": 0})
        assert (tmp_path / "kv" / "nepaltools_stats.json").is_file()
        assert not list((tmp_path / "kv").glob("*.tmp"))

    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        await JsonFileBackend(tmp_path).set("k", "v")
        assert await JsonFileBackend(tmp_path).get("k") == "v"

    async def test_invalid_key(self, tmp_path: Path) -> None:
        with pytest.raises(BackendIOError):
            await JsonFileBackend(tmp_path).set("../escape", 1)

    async def test_corrupt_file(self, tmp_path: Path) -> None:
        backend = JsonFileBackend(tmp_path)
        (tmp_path / "kv" / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(BackendIOError):
            await backend.get("broken")


class TestSqliteBackend:
    """Tests specific to the SQLite backend."""

    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        await SqliteBackend(tmp_path).set("k", {"v": 1})
        assert await SqliteBackend(tmp_path).get("k") == {"v": 1}

    async def test_vacuum(self, tmp_path: Path) -> None:
        backend = SqliteBackend(tmp_path)
        await backend.set("k", "x" * 10_000)
        await backend.remove("k")
        await backend.vacuum()
        assert await backend.get("k") is None
