"""
Storage Services Package

Provides the abstract key-value interface the ledger persists through and
two concrete backends: in-memory (tests) and JSON files on disk.
"""

from typing import Optional

from finledger.config import StorageSettings, get_settings
from finledger.services.storage.interface import (
    ConnectionError,
    KeyValueStorage,
    SerializationError,
    StorageError,
)
from finledger.services.storage.json_file import JsonFileStorage
from finledger.services.storage.memory import InMemoryStorage


def create_storage(settings: Optional[StorageSettings] = None) -> KeyValueStorage:
    """Build the configured storage backend."""
    settings = settings or get_settings().storage
    if settings.backend == "json":
        return JsonFileStorage(
            data_dir=settings.data_dir,
            key_prefix=settings.key_prefix,
            retry_attempts=settings.retry_attempts,
        )
    return InMemoryStorage(key_prefix=settings.key_prefix)


__all__ = [
    # Interface
    "KeyValueStorage",
    # Exceptions
    "ConnectionError",
    "SerializationError",
    "StorageError",
    # Implementations
    "InMemoryStorage",
    "JsonFileStorage",
    "create_storage",
]
