"""Tests for exporting and importing backups."""

import json
from pathlib import Path

import pytest

from nepaltools.exceptions import InvalidBackupFormatError, QuotaExceededError
from nepaltools.models.records import FileRecord
from nepaltools.models.stats import StorageStats
from nepaltools.storage.backends import MemoryBackend
from nepaltools.storage.backup import BACKUP_VERSION, parse_backup
from nepaltools.storage.encoding import encode_data_url
from nepaltools.storage.file_store import FILES_KEY, SETTINGS_KEY, STATS_KEY, FileStore

MIB = 1024 * 1024


def _record(file_id: str, data: bytes, mime_type: str = "application/pdf") -> dict:
    return FileRecord(
        id=file_id,
        name=f"{file_id}.bin",
        mime_type=mime_type,
        size_bytes=len(data),
        encoded_data=encode_data_url(data, mime_type),
        category="pdf",
        created_at=1,
        last_accessed_at=1,
    ).to_storage()


def _backup(*records: dict, **extra) -> dict:
    return {
        "files": {record["id"]: record for record in records},
        "version": BACKUP_VERSION,
        **extra,
    }


class TestExport:
    """Tests for building and writing backups."""

    async def test_document_shape(self, store: FileStore, sample_pdf: bytes) -> None:
        file_id = await store.save_file(sample_pdf, "a.pdf", "application/pdf", "pdf")

        data = await store.export_data()

        assert set(data) == {"files", "settings", "history", "stats", "version", "exportDate"}
        assert data["version"] == "2.0"
        assert data["exportDate"].endswith("Z")
        assert data["files"][file_id]["sizeBytes"] == len(sample_pdf)
        assert data["settings"]["compressionLevel"] == "medium"
        assert data["stats"]["totalFiles"] == 1
        assert data["history"][0]["action"] == "file_upload"
        json.dumps(data)

    async def test_export_to_file(self, store: FileStore, tmp_path: Path) -> None:
        await store.save_file(b"abc", "a.txt", "text/plain")

        destination = await store.export_to_file(tmp_path / "backups")

        assert destination.parent == tmp_path / "backups"
        assert destination.name.startswith("nepaltools-backup-")
        assert destination.suffix == ".json"
        loaded = json.loads(destination.read_text(encoding="utf-8"))
        assert loaded == parse_backup(loaded).to_storage()

    async def test_export_then_import_into_fresh_store(
        self, store: FileStore, tmp_path: Path, sample_png: bytes
    ) -> None:
        file_id = await store.save_file(sample_png, "a.png", "image/png", "image")
        await store.update_settings({"theme": "dark"})
        destination = await store.export_to_file(tmp_path)

        fresh = FileStore(MemoryBackend())
        await fresh.init()
        summary = await fresh.import_file(destination)

        assert summary.imported_files == 1
        assert summary.overlapping_ids == []
        assert summary.settings_merged is True
        assert await fresh.get_files() == await store.get_files()
        assert (await fresh.get_settings()).theme == "dark"
        stats = await fresh.get_stats()
        assert (stats.total_files, stats.image_count) == (1, 1)
        assert stats.total_size_bytes == len(sample_png)
        _, data = await fresh.read_file(file_id)
        assert data == sample_png


class TestImportValidation:
    """Tests for rejected imports, which must not write anything."""

    @pytest.mark.parametrize(
        "payload",
        [
            "not json at all",
            "[1, 2, 3]",
            {"files": {}},
            {"version": "2.0"},
            {"version": "", "files": {}},
            {"version": "2.0", "files": {"a": {"id": "a"}}},
            {"version": "2.0", "files": []},
        ],
    )
    async def test_invalid_format(self, store: FileStore, payload) -> None:
        before = await store.backend.get(FILES_KEY)
        with pytest.raises(InvalidBackupFormatError) as exc_info:
            await store.import_data(payload)
        assert exc_info.value.kind == "InvalidBackupFormat"
        assert await store.backend.get(FILES_KEY) == before

    async def test_mismatched_key_and_id(self, store: FileStore) -> None:
        payload = {"version": "2.0", "files": {"other": _record("a", b"x")}}
        with pytest.raises(InvalidBackupFormatError):
            await store.import_data(payload)

    async def test_understated_size_rejected(self) -> None:
        store = FileStore(MemoryBackend(quota_bytes=1000))
        await store.init()
        record = _record("a", b"x" * 5000)
        record["sizeBytes"] = 0
        with pytest.raises(InvalidBackupFormatError, match="decodes to 5000"):
            await store.import_data(_backup(record))
        assert await store.get_files() == {}
        assert (await store.get_storage_usage()).used == 0

    @pytest.mark.parametrize(
        "encoded_data",
        ["not a data url", "data:text/plain;base64,!!!!"],
    )
    async def test_malformed_payload_rejected(
        self, store: FileStore, encoded_data: str
    ) -> None:
        record = _record("a", b"x")
        record["encodedData"] = encoded_data
        with pytest.raises(InvalidBackupFormatError, match="malformed payload"):
            await store.import_data(_backup(record))
        assert await store.get_files() == {}

    async def test_invalid_settings_rejected_before_writes(self, store: FileStore) -> None:
        payload = _backup(_record("a", b"x"), settings={"compressionLevel": "ultra"})
        with pytest.raises(InvalidBackupFormatError):
            await store.import_data(payload)
        assert await store.get_files() == {}
        assert (await store.get_stats()).total_files == 0

    async def test_quota_exceeding_import(self) -> None:
        backend = MemoryBackend(quota_bytes=10 * MIB)
        store = FileStore(backend)
        await store.init()
        await store.save_file(b"existing", "keep.txt", "text/plain")
        await backend.set(
            STATS_KEY, StorageStats(total_files=1, total_size_bytes=9 * MIB).to_storage()
        )
        files_before = json.dumps(await backend.get(FILES_KEY), sort_keys=True)
        settings_before = await backend.get(SETTINGS_KEY)

        payload = _backup(
            _record("big_1", b"\x00" * MIB),
            _record("big_2", b"\x01" * MIB),
            settings={"theme": "dark"},
        )
        with pytest.raises(QuotaExceededError) as exc_info:
            await store.import_data(json.dumps(payload))

        assert exc_info.value.kind == "QuotaExceeded"
        assert json.dumps(await backend.get(FILES_KEY), sort_keys=True) == files_before
        assert await backend.get(SETTINGS_KEY) == settings_before
        assert (await store.get_stats()).total_size_bytes == 9 * MIB

    async def test_import_within_safety_margin(self) -> None:
        store = FileStore(MemoryBackend(quota_bytes=1000))
        await store.init()
        summary = await store.import_data(_backup(_record("a", b"x" * 900)))
        assert summary.imported_size_bytes == 900

    async def test_import_just_over_safety_margin(self) -> None:
        store = FileStore(MemoryBackend(quota_bytes=1000))
        await store.init()
        with pytest.raises(QuotaExceededError):
            await store.import_data(_backup(_record("a", b"x" * 901)))


class TestImportMerge:
    """Tests for how imports merge into existing state."""

    async def test_overlap_overwrites_and_double_counts(self, store: FileStore) -> None:
        file_id = await store.save_file(b"original", "a.pdf", "application/pdf", "pdf")
        backup = await store.export_data()
        backup["files"][file_id]["name"] = "from-backup.pdf"

        summary = await store.import_data(backup)

        files = await store.get_files()
        assert list(files) == [file_id]
        assert files[file_id].name == "from-backup.pdf"
        assert summary.overlapping_ids == [file_id]
        # Stats are increased additively, so the overlapping file counts twice.
        stats = await store.get_stats()
        assert stats.total_files == 2
        assert stats.pdf_count == 2
        assert stats.total_size_bytes == 2 * len(b"original")
        assert stats.total_files != len(files)

    async def test_recount_after_overlap(self, store: FileStore) -> None:
        await store.save_file(b"original", "a.pdf", "application/pdf")
        await store.import_data(await store.export_data())
        stats = await store.recount_stats()
        assert stats.total_files == 1
        assert stats.total_size_bytes == len(b"original")

    async def test_new_files_are_added(self, store: FileStore) -> None:
        existing = await store.save_file(b"abc", "a.txt", "text/plain")
        await store.import_data(
            _backup(_record("img", b"png", "image/png"), _record("doc", b"pdf"))
        )
        files = await store.get_files()
        assert set(files) == {existing, "img", "doc"}
        stats = await store.get_stats()
        assert stats.total_files == 3
        assert stats.image_count == 1
        assert stats.pdf_count == 1
        assert stats.total_size_bytes == 9

    async def test_settings_merged(self, store: FileStore) -> None:
        await store.update_settings({"language": "ne"})
        await store.import_data(_backup(settings={"theme": "dark"}))
        settings = await store.get_settings()
        assert settings.theme == "dark"
        assert settings.language == "ne"

    async def test_without_settings(self, store: FileStore) -> None:
        await store.update_settings({"theme": "dark"})
        summary = await store.import_data(_backup(_record("a", b"x")))
        assert summary.settings_merged is False
        assert (await store.get_settings()).theme == "dark"

    async def test_accepts_bytes(self, store: FileStore) -> None:
        payload = json.dumps(_backup(_record("a", b"x"))).encode()
        summary = await store.import_data(payload)
        assert summary.imported_files == 1
