"""
Local Storage - Device-scoped key-value persistence.

The identity provider only needs get/set of a couple of string
keys. Two backends:
- MemoryKeyValueStore: for tests and throwaway clients
- JsonFileKeyValueStore: one small JSON file per device/user
"""

from __future__ import annotations
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Device-local string key-value storage."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get a stored value, or None if missing."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value if present."""
        pass


class MemoryKeyValueStore(KeyValueStore):
    """In-memory storage. Lives as long as the object."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    File-backed storage.

    Usage:
        store = JsonFileKeyValueStore("~/.pokerplan/identity.json")
        store.set("displayName", "Alice")
        store.get("displayName")

    The whole file is rewritten on each set; writes go through a
    temporary file so a crash never leaves half a JSON document.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("identity: ignoring unreadable store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)
