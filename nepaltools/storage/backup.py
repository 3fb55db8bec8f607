"""
Backup document format for exporting and importing the whole store.
"""

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from nepaltools.exceptions import InvalidBackupFormatError, InvalidDataUrlError
from nepaltools.models.records import FileRecord, HistoryEntry
from nepaltools.models.stats import StorageStats

from .encoding import decode_data_url

BACKUP_VERSION = "2.0"


class BackupDocument(BaseModel):
    """
    The JSON backup shape:
    ``{files, settings, history, stats, version, exportDate}``.
    """

    files: dict[str, FileRecord]
    version: str
    settings: dict[str, Any] | None = None
    history: list[HistoryEntry] = Field(default_factory=list)
    stats: StorageStats | None = None
    export_date: str | None = None

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v:
            raise ValueError("Backup version cannot be empty.")
        return v

    @property
    def total_size_bytes(self) -> int:
        return sum(record.size_bytes for record in self.files.values())

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def build_backup(
    files: dict[str, FileRecord],
    settings: dict[str, Any],
    history: list[HistoryEntry],
    stats: StorageStats,
) -> BackupDocument:
    """Assembles a backup document stamped with the current UTC time."""
    return BackupDocument(
        files=files,
        settings=settings,
        history=history,
        stats=stats,
        version=BACKUP_VERSION,
        export_date=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


def parse_backup(payload: str | bytes | dict[str, Any]) -> BackupDocument:
    """
    Parses and validates a backup payload.

    Raises:
        InvalidBackupFormatError: If the payload is not JSON, lacks `version` or
        `files`, or contains malformed records.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidBackupFormatError(f"Backup is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidBackupFormatError("Backup must be a JSON object.")
    if not payload.get("version") or payload.get("files") is None:
        raise InvalidBackupFormatError(
            "Invalid backup file format: 'version' and 'files' are required."
        )

    try:
        document = BackupDocument.model_validate(payload)
    except ValidationError as e:
        raise InvalidBackupFormatError(f"Backup validation failed:\n{e}") from e

    for file_id, record in document.files.items():
        if record.id != file_id:
            raise InvalidBackupFormatError(
                f"Backup entry '{file_id}' holds a record with id '{record.id}'."
            )
        try:
            _, data = decode_data_url(record.encoded_data)
        except InvalidDataUrlError as e:
            raise InvalidBackupFormatError(
                f"Backup entry '{file_id}' has a malformed payload: {e}"
            ) from e
        if len(data) != record.size_bytes:
            raise InvalidBackupFormatError(
                f"Backup entry '{file_id}' claims {record.size_bytes} bytes "
                f"but its payload decodes to {len(data)}."
            )
    return document
