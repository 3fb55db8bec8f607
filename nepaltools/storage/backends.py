"""
Key-value backends the file store persists into.

Every backend exposes the same four asynchronous primitives (get, set, remove,
clear) and a fixed quota. The application picks one explicitly at startup and
hands it to the store.
"""

import asyncio
import json
import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import closing
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from nepaltools.exceptions import BackendIOError
from nepaltools.models.config import BackendKind

log = logging.getLogger(__name__)

SQLITE_QUOTA_BYTES = 1024 * 1024 * 1024  # 1 GiB
FALLBACK_QUOTA_BYTES = 10 * 1024 * 1024  # 10 MiB

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def _as_keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


def _serialize(key: str, value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise BackendIOError(f"Value for key '{key}' is not serializable: {e}") from e


def _deserialize(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise BackendIOError(f"Stored value for key '{key}' is corrupt: {e}") from e


class KeyValueBackend(ABC):
    """Uniform asynchronous key-value interface over a persistent store."""

    name = "abstract"
    default_quota_bytes = FALLBACK_QUOTA_BYTES

    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes or self.default_quota_bytes

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Returns the stored value, or None if the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Stores a JSON-compatible value under the key."""

    @abstractmethod
    async def remove(self, keys: str | Iterable[str]) -> None:
        """Removes one or more keys. Missing keys are ignored."""

    @abstractmethod
    async def clear(self) -> None:
        """Removes every key."""

    async def close(self) -> None:
        """Releases any resources held by the backend."""


class MemoryBackend(KeyValueBackend):
    """
    Ephemeral in-process backend. Values are stored serialized so callers
    never share mutable state with the store.
    """

    name = "memory"

    def __init__(self, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        return _deserialize(key, raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = _serialize(key, value)

    async def remove(self, keys: str | Iterable[str]) -> None:
        for key in _as_keys(keys):
            self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()


class JsonFileBackend(KeyValueBackend):
    """
    Fallback backend storing one JSON document per key inside a directory.
    Writes go to a temporary file first and are moved into place.
    """

    name = "json"

    def __init__(self, data_dir: Path, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self.data_dir = data_dir / "kv"
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise BackendIOError(f"Invalid storage key: '{key}'")
        return self.data_dir / f"{key}.json"

    async def get(self, key: str) -> Any | None:
        path = self._path_for(key)
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackendIOError(f"Failed to read key '{key}': {e}") from e
        return _deserialize(key, raw)

    async def set(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        serialized = _serialize(key, value)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(serialized)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise BackendIOError(f"Failed to write key '{key}': {e}") from e

    async def remove(self, keys: str | Iterable[str]) -> None:
        for key in _as_keys(keys):
            path = self._path_for(key)
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BackendIOError(f"Failed to remove key '{key}': {e}") from e

    async def clear(self) -> None:
        log.info("Clearing all stored keys...")
        try:
            for path in self.data_dir.glob("*.json"):
                await aiofiles.os.remove(path)
        except OSError as e:
            raise BackendIOError(f"Failed to clear storage: {e}") from e


class SqliteBackend(KeyValueBackend):
    """
    Privileged backend on a SQLite database with a large quota. Blocking
    database calls run in worker threads, bounded by a semaphore.
    """

    name = "sqlite"
    default_quota_bytes = SQLITE_QUOTA_BYTES

    def __init__(
        self, data_dir: Path, quota_bytes: int | None = None, pool_size: int = 5
    ):
        super().__init__(quota_bytes)
        data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = data_dir / "nepaltools.sqlite"
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to storage database: {e}")
            raise BackendIOError(f"Failed to open storage database: {e}") from e

    def _initialize_db(self) -> None:
        """Creates the key-value table if it doesn't exist."""
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY NOT NULL,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
        except sqlite3.Error as e:
            log.error(f"Failed to initialize storage database at '{self.db_path}': {e}")
            raise BackendIOError(f"Failed to initialize storage database: {e}") from e

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    def _get_sync(self, key: str) -> str | None:
        try:
            with closing(self._get_connection()) as conn:
                row = conn.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
                return row[0] if row else None
        except sqlite3.Error as e:
            raise BackendIOError(f"Failed to read key '{key}': {e}") from e

    def _set_sync(self, key: str, serialized: str) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute(
                    "INSERT INTO kv (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = CURRENT_TIMESTAMP",
                    (key, serialized),
                )
        except sqlite3.Error as e:
            raise BackendIOError(f"Failed to write key '{key}': {e}") from e

    def _remove_sync(self, keys: list[str]) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        except sqlite3.Error as e:
            raise BackendIOError(f"Failed to remove keys {keys}: {e}") from e

    def _clear_sync(self) -> None:
        try:
            with closing(self._get_connection()) as conn, conn:
                conn.execute("DELETE FROM kv")
        except sqlite3.Error as e:
            raise BackendIOError(f"Failed to clear storage: {e}") from e

    async def get(self, key: str) -> Any | None:
        raw = await self._run_in_executor(self._get_sync, key)
        if raw is None:
            return None
        return _deserialize(key, raw)

    async def set(self, key: str, value: Any) -> None:
        serialized = _serialize(key, value)
        await self._run_in_executor(self._set_sync, key, serialized)

    async def remove(self, keys: str | Iterable[str]) -> None:
        await self._run_in_executor(self._remove_sync, _as_keys(keys))

    async def clear(self) -> None:
        log.info("Clearing all stored keys...")
        await self._run_in_executor(self._clear_sync)

    def _vacuum_sync(self) -> None:
        try:
            with closing(self._get_connection()) as conn:
                conn.execute("VACUUM;")
        except sqlite3.Error as e:
            raise BackendIOError(f"Database vacuum failed: {e}") from e

    async def vacuum(self) -> None:
        """Rebuilds the database file to reclaim space from deleted payloads."""
        await self._run_in_executor(self._vacuum_sync)
        log.info("Storage database optimized successfully.")


def create_backend(
    kind: BackendKind | str, data_dir: Path, quota_bytes: int | None = None
) -> KeyValueBackend:
    """Builds the backend selected by the application configuration."""
    kind = BackendKind(kind)
    if kind is BackendKind.SQLITE:
        return SqliteBackend(data_dir, quota_bytes)
    if kind is BackendKind.JSON:
        return JsonFileBackend(data_dir, quota_bytes)
    return MemoryBackend(quota_bytes)
