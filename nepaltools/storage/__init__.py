"""
Storage Layer.

This package handles all data persistence: the key-value backends, the
data-URL codec, the file store itself, backups and the configuration file.
"""

from .backends import (
    JsonFileBackend,
    KeyValueBackend,
    MemoryBackend,
    SqliteBackend,
    create_backend,
)
from .config_manager import ConfigManager
from .file_store import FileStore

__all__ = [
    "ConfigManager",
    "FileStore",
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "SqliteBackend",
    "create_backend",
]
