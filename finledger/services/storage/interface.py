"""
Abstract Storage Interface

DESIGN DECISION: The ledger persists through an opaque key-value store.
This allows us to:
1. Use in-memory storage for tests
2. Use plain JSON files on disk for a single user
3. Swap in any other backend without touching ledger logic

The interface is intentionally tiny: save, load, remove. Values are
JSON-compatible Python structures (lists of dicts).
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyValueStorage(ABC):
    """
    Abstract interface for ledger persistence.

    All operations are synchronous. Implementations raise StorageError
    on backend failure; the ledger never retries on its own.
    """

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        """
        Store a value under a logical key, replacing any previous value.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """
        Read the value stored under a key.

        Returns:
            The stored value, or None if the key was never written

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """
        Delete a key. Removing a missing key is a no-op.

        Raises:
            StorageError: If the delete fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class SerializationError(StorageError):
    """Value could not be encoded or decoded."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass


def validate_key(key: str) -> str:
    """Logical keys are plain names: no separators, never empty."""
    if not key or not key.strip():
        raise ValueError("Storage key cannot be empty")
    if "/" in key or "\\" in key or key.startswith("."):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key
