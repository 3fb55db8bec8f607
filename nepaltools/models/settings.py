"""
Pydantic model for user-facing store settings.
"""

from enum import Enum

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB per file


class CompressionLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Settings(BaseModel):
    """Persisted application settings with validation."""

    theme: str = "light"
    language: str = "en"
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE
    auto_save: bool = True
    compression_level: CompressionLevel = CompressionLevel.MEDIUM

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"
        use_enum_values = True
        str_strip_whitespace = True

    @field_validator("max_file_size_bytes")
    @classmethod
    def validate_max_file_size(cls, v: int) -> int:
        """Ensures the per-file limit is a positive byte count."""
        if v <= 0:
            raise ValueError("Maximum file size must be a positive number of bytes.")
        return v

    @field_validator("theme", "language")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
