"""
The local file store: file records, aggregate statistics, a bounded action
history and settings, all persisted through a pluggable key-value backend.
"""

import asyncio
import json
import logging
import mimetypes
import secrets
import string
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from pydantic import BaseModel, ValidationError

from nepaltools.exceptions import (
    BackendIOError,
    FileTooLargeError,
    InvalidBackupFormatError,
    InvalidMetadataError,
    InvalidSettingsError,
    QuotaExceededError,
)
from nepaltools.models.records import FileRecord, HistoryEntry, now_ms
from nepaltools.models.settings import Settings
from nepaltools.models.stats import ImportSummary, StorageStats, StorageUsage
from nepaltools.utils.formatting import category_for_mime_type
from nepaltools.utils.structured_logger import StoreEventLogger

from .backends import KeyValueBackend
from .backup import build_backup, parse_backup
from .encoding import DEFAULT_MIME_TYPE, decode_data_url, encode_data_url

log = logging.getLogger(__name__)

FILES_KEY = "nepaltools_files"
SETTINGS_KEY = "nepaltools_settings"
HISTORY_KEY = "nepaltools_history"
STATS_KEY = "nepaltools_stats"

HISTORY_LIMIT = 100
# Imports must leave 10% of the quota free.
IMPORT_QUOTA_RATIO = 0.9

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _merge_fields(
    model_cls: type[BaseModel], current: dict[str, Any], partial: dict[str, Any]
) -> dict[str, Any]:
    """Shallow-merges `partial` into a persisted dict, accepting python field names or aliases."""
    merged = dict(current)
    for key, value in partial.items():
        field = model_cls.model_fields.get(key)
        merged[field.alias if field is not None and field.alias else key] = value
    return merged


class FileStore:
    """
    Persists uploaded files and their metadata in a key-value backend.

    Mutating operations are serialized with an asyncio lock, but each one is
    still a sequence of independent writes (files map, then stats, then
    history). A backend failure part-way through leaves the stats out of step
    with the files map until `recount_stats` is run.
    """

    def __init__(
        self, backend: KeyValueBackend, events: StoreEventLogger | None = None
    ):
        self.backend = backend
        self.events = events
        self._lock = asyncio.Lock()

    @property
    def quota_bytes(self) -> int:
        """The configured quota of the active backend."""
        return self.backend.quota_bytes

    # --- Initialization ---

    @staticmethod
    def _defaults() -> dict[str, Any]:
        return {
            FILES_KEY: {},
            SETTINGS_KEY: Settings().to_storage(),
            HISTORY_KEY: [],
            STATS_KEY: StorageStats().to_storage(),
        }

    async def init(self) -> None:
        """Seeds any missing top-level key with its default. Never overwrites."""
        seeded = []
        for key, value in self._defaults().items():
            if await self.backend.get(key) is None:
                await self.backend.set(key, value)
                seeded.append(key)
        if seeded:
            log.debug(f"Initialized storage keys: {', '.join(seeded)}")

    async def clear(self) -> None:
        """Removes everything from the backend and re-seeds the defaults."""
        async with self._lock:
            await self.backend.clear()
            await self.init()
        if self.events:
            self.events.store_cleared(self.backend.name)

    # --- Internal loaders ---

    async def _load_files(self) -> dict[str, FileRecord]:
        raw = await self.backend.get(FILES_KEY) or {}
        try:
            return {
                file_id: FileRecord.model_validate(record)
                for file_id, record in raw.items()
            }
        except ValidationError as e:
            raise BackendIOError(f"Stored files map is corrupt:\n{e}") from e

    async def _save_files(self, files: dict[str, FileRecord]) -> None:
        await self.backend.set(
            FILES_KEY, {file_id: record.to_storage() for file_id, record in files.items()}
        )

    async def _load_stats(self) -> StorageStats:
        raw = await self.backend.get(STATS_KEY)
        if raw is None:
            return StorageStats()
        try:
            return StorageStats.model_validate(raw)
        except ValidationError as e:
            raise BackendIOError(f"Stored statistics are corrupt:\n{e}") from e

    async def _save_stats(self, stats: StorageStats) -> None:
        await self.backend.set(STATS_KEY, stats.to_storage())

    async def _append_history(self, action: str, payload: Any) -> None:
        history = await self.backend.get(HISTORY_KEY) or []
        entry = HistoryEntry(action=action, payload=payload)
        history.insert(0, entry.model_dump(by_alias=True))
        del history[HISTORY_LIMIT:]
        await self.backend.set(HISTORY_KEY, history)

    @staticmethod
    def _generate_file_id(existing: dict[str, FileRecord]) -> str:
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            file_id = f"file_{now_ms()}_{suffix}"
            if file_id not in existing:
                return file_id

    def _check_size(self, filename: str, size_bytes: int, settings: Settings) -> None:
        if size_bytes > settings.max_file_size_bytes:
            if self.events:
                self.events.file_rejected(
                    filename, size_bytes, settings.max_file_size_bytes
                )
            raise FileTooLargeError(size_bytes, settings.max_file_size_bytes)

    # --- Files ---

    async def save_file(
        self, data: bytes, filename: str, mime_type: str, category: str = "other"
    ) -> str:
        """
        Stores a file and returns its new id.

        Args:
            data: The raw file bytes.
            filename: The original filename.
            mime_type: The file's mime type, e.g. 'application/pdf'.
            category: A free-form tag such as 'pdf', 'image' or 'other'.

        Raises:
            FileTooLargeError: If the file exceeds the configured maximum size.
            Nothing is written in that case.
        """
        settings = await self.get_settings()
        size_bytes = len(data)
        self._check_size(filename, size_bytes, settings)

        mime_type = mime_type or DEFAULT_MIME_TYPE
        encoded = encode_data_url(data, mime_type)

        async with self._lock:
            files = await self._load_files()
            file_id = self._generate_file_id(files)
            timestamp = now_ms()
            files[file_id] = FileRecord(
                id=file_id,
                name=filename,
                mime_type=mime_type,
                size_bytes=size_bytes,
                encoded_data=encoded,
                category=category,
                created_at=timestamp,
                last_accessed_at=timestamp,
            )
            await self._save_files(files)

            stats = await self._load_stats()
            stats.record_added(size_bytes, mime_type)
            await self._save_stats(stats)

            await self._append_history(
                "file_upload",
                {"fileName": filename, "fileSize": size_bytes, "fileId": file_id},
            )

        if self.events:
            self.events.file_saved(file_id, filename, mime_type, size_bytes)
        return file_id

    async def save_path(
        self,
        path: Path,
        category: str | None = None,
        mime_type: str | None = None,
    ) -> str:
        """
        Stores a file from disk. The size limit is checked against the file's
        on-disk size before it is read.
        """
        path = Path(path)
        settings = await self.get_settings()
        stat_result = await aiofiles.os.stat(path)
        self._check_size(path.name, stat_result.st_size, settings)

        async with aiofiles.open(path, "rb") as f:
            data = await f.read()

        mime_type = mime_type or mimetypes.guess_type(path.name)[0] or DEFAULT_MIME_TYPE
        category = category or category_for_mime_type(mime_type)
        return await self.save_file(data, path.name, mime_type, category)

    async def get_files(self) -> dict[str, FileRecord]:
        """Returns every stored record keyed by id."""
        return await self._load_files()

    async def get_file(self, file_id: str) -> FileRecord | None:
        """Returns a record without touching its access time, or None."""
        return (await self._load_files()).get(file_id)

    async def read_file(self, file_id: str) -> tuple[FileRecord, bytes] | None:
        """
        Decodes a stored file's bytes and stamps its access time.
        Returns None if the id is unknown.
        """
        async with self._lock:
            files = await self._load_files()
            record = files.get(file_id)
            if record is None:
                return None
            _, data = decode_data_url(record.encoded_data)
            record.last_accessed_at = now_ms()
            await self._save_files(files)
        return record, data

    async def update_file_metadata(self, file_id: str, fields: dict[str, Any]) -> bool:
        """
        Shallow-merges fields into an existing record and stamps its access
        time. The id itself cannot be changed. Returns False if the id is
        unknown; records are never created here.

        Raises:
            InvalidMetadataError: If the merged record fails validation. Nothing
            is written in that case.
        """
        async with self._lock:
            files = await self._load_files()
            record = files.get(file_id)
            if record is None:
                return False

            merged = _merge_fields(FileRecord, record.to_storage(), fields)
            merged["id"] = file_id
            merged["lastAccessedAt"] = now_ms()
            try:
                files[file_id] = FileRecord.model_validate(merged)
            except ValidationError as e:
                raise InvalidMetadataError(
                    f"Metadata update for '{file_id}' failed validation:\n{e}"
                ) from e
            await self._save_files(files)

        if self.events:
            self.events.metadata_updated(file_id, sorted(fields))
        return True

    async def delete_file(self, file_id: str) -> bool:
        """Removes a record and its share of the stats. False if the id is unknown."""
        async with self._lock:
            files = await self._load_files()
            record = files.pop(file_id, None)
            if record is None:
                return False
            await self._save_files(files)

            stats = await self._load_stats()
            stats.record_removed(record.size_bytes, record.mime_type)
            await self._save_stats(stats)

        if self.events:
            self.events.file_deleted(file_id, record.size_bytes)
        return True

    async def get_files_by_type(self, type_substring: str) -> list[FileRecord]:
        """Returns records whose mime type contains the substring (case-sensitive)."""
        files = await self._load_files()
        return [r for r in files.values() if type_substring in r.mime_type]

    async def get_recent_files(self, limit: int = 10) -> list[FileRecord]:
        """Returns up to `limit` records, most recently accessed first."""
        files = await self._load_files()
        ordered = sorted(
            files.values(), key=lambda r: r.last_accessed_at, reverse=True
        )
        return ordered[: max(limit, 0)]

    # --- Statistics ---

    async def get_stats(self) -> StorageStats:
        return await self._load_stats()

    async def get_storage_usage(self) -> StorageUsage:
        """Reports used bytes against the active backend's quota."""
        stats = await self._load_stats()
        total = self.quota_bytes
        return StorageUsage(
            used=stats.total_size_bytes,
            total=total,
            percent=stats.total_size_bytes / total * 100,
        )

    async def recount_stats(self) -> StorageStats:
        """Rebuilds the cached statistics from the files map and persists them."""
        async with self._lock:
            files = await self._load_files()
            previous = await self._load_stats()
            stats = StorageStats.from_records(list(files.values()))
            await self._save_stats(stats)

        drifted = previous.model_dump(exclude={"last_updated"}) != stats.model_dump(
            exclude={"last_updated"}
        )
        if drifted:
            log.warning(
                f"Statistics had drifted: {previous.total_files} files / "
                f"{previous.total_size_bytes} bytes recorded, "
                f"{stats.total_files} files / {stats.total_size_bytes} bytes actual."
            )
        if self.events:
            self.events.stats_recounted(
                stats.total_files, stats.total_size_bytes, drifted
            )
        return stats

    # --- History ---

    async def add_to_history(self, action: str, payload: Any = None) -> None:
        """Prepends an entry, keeping only the newest entries."""
        async with self._lock:
            await self._append_history(action, payload)

    async def get_history(self, limit: int = 20) -> list[HistoryEntry]:
        """Returns up to `limit` entries, newest first."""
        history = await self.backend.get(HISTORY_KEY) or []
        return [HistoryEntry.model_validate(e) for e in history[: max(limit, 0)]]

    # --- Settings ---

    async def get_settings(self) -> Settings:
        raw = await self.backend.get(SETTINGS_KEY)
        if raw is None:
            return Settings()
        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            raise BackendIOError(f"Stored settings are corrupt:\n{e}") from e

    @staticmethod
    def _merge_settings(current: Settings, partial: dict[str, Any]) -> Settings:
        merged = _merge_fields(Settings, current.to_storage(), partial)
        try:
            return Settings.model_validate(merged)
        except ValidationError as e:
            raise InvalidSettingsError(f"Settings validation failed:\n{e}") from e

    async def update_settings(self, partial: dict[str, Any]) -> Settings:
        """
        Shallow-merges the given settings over the current ones and persists
        the result.

        Raises:
            InvalidSettingsError: If the merged settings fail validation.
            Nothing is written in that case.
        """
        async with self._lock:
            updated = self._merge_settings(await self.get_settings(), partial)
            await self.backend.set(SETTINGS_KEY, updated.to_storage())
        return updated

    # --- Import / Export ---

    async def export_data(self) -> dict[str, Any]:
        """Builds the backup document for the whole store."""
        document = build_backup(
            files=await self._load_files(),
            settings=(await self.get_settings()).to_storage(),
            history=await self.get_history(HISTORY_LIMIT),
            stats=await self._load_stats(),
        )
        return document.to_storage()

    async def export_to_file(self, directory: Path) -> Path:
        """Writes the backup document to `nepaltools-backup-<ms>.json` in a directory."""
        data = await self.export_data()
        directory = Path(directory)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        destination = directory / f"nepaltools-backup-{now_ms()}.json"
        async with aiofiles.open(destination, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))

        if self.events:
            self.events.backup_exported(len(data["files"]), str(destination))
        return destination

    async def import_data(
        self, payload: str | bytes | dict[str, Any], source: str | None = None
    ) -> ImportSummary:
        """
        Merges a backup into the store.

        Incoming files overwrite existing records with the same id. Stats are
        increased by the imported files' counts and sizes without checking for
        ids that were already counted, so re-importing overlapping backups
        double counts them; `ImportSummary.overlapping_ids` lists those ids.

        Raises:
            InvalidBackupFormatError: If the payload is malformed or its
            settings are invalid.
            QuotaExceededError: If the import would use more than 90% of the
            quota.
            Both are raised before anything is written.
        """
        try:
            document = parse_backup(payload)
        except InvalidBackupFormatError as e:
            if self.events:
                self.events.import_rejected(str(e), e.kind)
            raise

        async with self._lock:
            incoming_size = document.total_size_bytes
            usage = await self.get_storage_usage()
            if usage.used + incoming_size > usage.total * IMPORT_QUOTA_RATIO:
                error = QuotaExceededError(
                    f"Import would exceed storage limit ({usage.used} bytes used + "
                    f"{incoming_size} bytes incoming > 90% of {usage.total} bytes)."
                )
                if self.events:
                    self.events.import_rejected(str(error), error.kind)
                raise error

            merged_settings = None
            if document.settings:
                try:
                    merged_settings = self._merge_settings(
                        await self.get_settings(), document.settings
                    )
                except InvalidSettingsError as e:
                    raise InvalidBackupFormatError(
                        f"Backup contains invalid settings: {e}"
                    ) from e

            files = await self._load_files()
            overlapping = [file_id for file_id in document.files if file_id in files]
            files.update(document.files)
            await self._save_files(files)

            if merged_settings is not None:
                await self.backend.set(SETTINGS_KEY, merged_settings.to_storage())

            stats = await self._load_stats()
            for record in document.files.values():
                stats.record_added(record.size_bytes, record.mime_type)
            await self._save_stats(stats)

        if overlapping:
            log.warning(
                f"Imported {len(overlapping)} file(s) that were already stored; "
                "their sizes are now counted twice in the statistics."
            )
        if self.events:
            self.events.backup_imported(
                len(document.files), incoming_size, len(overlapping), source
            )
        return ImportSummary(
            imported_files=len(document.files),
            imported_size_bytes=incoming_size,
            overlapping_ids=overlapping,
            settings_merged=merged_settings is not None,
        )

    async def import_file(self, path: Path) -> ImportSummary:
        """Reads a backup file from disk and imports it."""
        path = Path(path)
        async with aiofiles.open(path, encoding="utf-8") as f:
            payload = await f.read()
        return await self.import_data(payload, source=str(path))
