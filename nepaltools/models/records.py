"""
Pydantic models for stored file records and history entries.
"""

import time
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Returns the current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class FileRecord(BaseModel):
    """A stored file: its metadata plus the data-URL encoded payload."""

    id: str
    name: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    encoded_data: str = Field(repr=False)
    category: str = "other"
    created_at: int
    last_accessed_at: int

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True
        # Callers may attach their own metadata through update_file_metadata.
        extra = "allow"

    def to_storage(self) -> dict[str, Any]:
        """Returns the persisted (camelCase) representation."""
        return self.model_dump(by_alias=True)


class HistoryEntry(BaseModel):
    """A single entry in the bounded action history."""

    action: str
    payload: Any = None
    timestamp: int = Field(default_factory=now_ms)

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True
