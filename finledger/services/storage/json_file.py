"""
JSON File Storage Implementation

One `<prefix><key>.json` file per logical key under a data directory.

TRADEOFFS:
- Every save rewrites the whole collection (fine for a personal ledger)
- No cross-key transactions (the ledger saves all keys after a mutation)

Transient OS errors (locked file, full buffer, network share hiccup) are
retried with exponential backoff. After the last attempt the error is
wrapped in StorageError and propagates to the caller.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finledger.services.storage.interface import (
    ConnectionError,
    KeyValueStorage,
    SerializationError,
    StorageError,
    validate_key,
)


class JsonFileStorage(KeyValueStorage):
    """
    File-per-key JSON store.

    Writes go to a temporary file first and are moved into place, so a
    crash never leaves a half-written collection behind.
    """

    def __init__(
        self,
        data_dir: Path,
        key_prefix: str = "",
        retry_attempts: int = 3,
        max_wait_seconds: float = 2.0,
    ):
        self._dir = Path(data_dir)
        self._prefix = key_prefix
        retry_policy = retry(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=max_wait_seconds),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )
        self._write = retry_policy(self._write_file)
        self._read = retry_policy(self._read_file)
        self._unlink = retry_policy(self._unlink_file)

        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConnectionError(f"Cannot create data directory {self._dir}: {e}") from e

    def path_for(self, key: str) -> Path:
        return self._dir / f"{self._prefix}{validate_key(key)}.json"

    # -------------------------------------------------------------------------
    # Raw file operations (retried)
    # -------------------------------------------------------------------------

    def _write_file(self, path: Path, text: str) -> None:
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)

    def _read_file(self, path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _unlink_file(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    # -------------------------------------------------------------------------
    # KeyValueStorage
    # -------------------------------------------------------------------------

    def save(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        try:
            text = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize value for {key!r}: {e}") from e
        try:
            self._write(path, text)
        except OSError as e:
            raise StorageError(f"Failed to save {key!r}: {e}") from e

    def load(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        try:
            text = self._read(path)
        except OSError as e:
            raise StorageError(f"Failed to load {key!r}: {e}") from e
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise SerializationError(f"Corrupt data in {path.name}: {e}") from e

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            self._unlink(path)
        except OSError as e:
            raise StorageError(f"Failed to remove {key!r}: {e}") from e
