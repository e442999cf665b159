"""
In-memory storage.

Values are round-tripped through JSON on save and on load so the stored
state is detached from live objects, the same way it would be on disk.
"""

import json
from typing import Any, Optional

from finledger.services.storage.interface import (
    KeyValueStorage,
    SerializationError,
    validate_key,
)


class InMemoryStorage(KeyValueStorage):
    """Dict-backed store, mainly for tests."""

    def __init__(self, key_prefix: str = ""):
        self._prefix = key_prefix
        self._data: dict[str, str] = {}

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{validate_key(key)}"

    def save(self, key: str, value: Any) -> None:
        full_key = self._full_key(key)
        try:
            self._data[full_key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize value for {key!r}: {e}") from e

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(self._full_key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def remove(self, key: str) -> None:
        self._data.pop(self._full_key(key), None)

    def keys(self) -> list[str]:
        """Logical keys currently stored (prefix stripped)."""
        return [k[len(self._prefix):] for k in self._data if k.startswith(self._prefix)]
