"""
Pydantic models for aggregate storage statistics and usage reporting.
"""

from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .records import FileRecord, now_ms


def classify_mime_type(mime_type: str) -> str | None:
    """Returns 'pdf' or 'image' for counted mime types, None otherwise."""
    if "pdf" in mime_type:
        return "pdf"
    if "image" in mime_type:
        return "image"
    return None


class StorageStats(BaseModel):
    """
    Cached aggregate counters over all stored records.

    The counters are maintained incrementally on save and delete, so they can
    drift from the files map after a partial failure; `from_records` rebuilds
    them from scratch.
    """

    total_files: int = 0
    total_size_bytes: int = 0
    pdf_count: int = 0
    image_count: int = 0
    last_updated: int = Field(default_factory=now_ms)

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True
        validate_assignment = True

    def record_added(self, size_bytes: int, mime_type: str) -> None:
        """Accounts for a newly stored file."""
        self.total_files += 1
        self.total_size_bytes += size_bytes
        kind = classify_mime_type(mime_type)
        if kind == "pdf":
            self.pdf_count += 1
        elif kind == "image":
            self.image_count += 1
        self.last_updated = now_ms()

    def record_removed(self, size_bytes: int, mime_type: str) -> None:
        """Accounts for a deleted file. Every counter clamps at zero."""
        self.total_files = max(0, self.total_files - 1)
        self.total_size_bytes = max(0, self.total_size_bytes - abs(size_bytes))
        kind = classify_mime_type(mime_type)
        if kind == "pdf":
            self.pdf_count = max(0, self.pdf_count - 1)
        elif kind == "image":
            self.image_count = max(0, self.image_count - 1)
        self.last_updated = now_ms()

    @classmethod
    def from_records(cls, records: list[FileRecord]) -> "StorageStats":
        """Recomputes the counters from a full set of records."""
        stats = cls()
        for record in records:
            stats.record_added(record.size_bytes, record.mime_type)
        stats.last_updated = now_ms()
        return stats

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class StorageUsage(BaseModel):
    """Used bytes against the active backend's quota."""

    used: int
    total: int
    percent: float


class ImportSummary(BaseModel):
    """Result of a successful backup import."""

    imported_files: int = 0
    imported_size_bytes: int = 0
    overlapping_ids: list[str] = Field(default_factory=list)
    settings_merged: bool = False
