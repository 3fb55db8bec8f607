"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as file records, settings, statistics
and configuration.
"""

from .config import BackendKind, StoreConfig
from .records import FileRecord, HistoryEntry, now_ms
from .settings import CompressionLevel, Settings
from .stats import ImportSummary, StorageStats, StorageUsage

__all__ = [
    "BackendKind",
    "CompressionLevel",
    "FileRecord",
    "HistoryEntry",
    "ImportSummary",
    "Settings",
    "StorageStats",
    "StorageUsage",
    "StoreConfig",
    "now_ms",
]
