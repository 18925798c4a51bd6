"""Key-value store backends for persisted engine state.

Values are JSON-serialisable objects addressed by stable string keys. The
file-backed store writes one JSON file per key under ``STATE_DIR``.
"""

import json
import re
import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Any

from docrefine.core.config import get_settings

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStoreError(Exception):
    """A value could not be read or written."""


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryStore(KeyValueStore):
    """Process-local store, used in tests and when no state dir is wanted."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # Stored serialised so callers never share mutable state with the store
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """One ``<key>.json`` file per key."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise KeyValueStoreError(f"Invalid key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise KeyValueStoreError(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise KeyValueStoreError(f"Value for '{key}' is not JSON-serialisable: {e}") from e

        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                # Write then rename so a crash never leaves a half-written file
                tmp = path.with_suffix(".json.tmp")
                tmp.write_text(payload, encoding="utf-8")
                tmp.replace(path)
            except OSError as e:
                raise KeyValueStoreError(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise KeyValueStoreError(f"Failed to delete '{key}': {e}") from e


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    """
    Get the configured key-value store (cached singleton).

    Returns:
        JsonFileStore rooted at STATE_DIR
    """
    settings = get_settings()
    return JsonFileStore(settings.STATE_DIR)
