"""
Synchronous string key-value stores used by the flat-store provider.

Supports an in-memory store for tests/local runs, a JSON file that survives
restarts, and a Redis-backed store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Protocol
import json
import os
import tempfile

import redis
from redis import exceptions as redis_exceptions

from storage_backend.errors import StorageConnectionError


class KeyValueStore(Protocol):
    """Minimal string-keyed storage interface."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def ping(self) -> None:
        ...


@dataclass
class InMemoryKeyValueStore:
    """Dict-backed store for testing/dev."""

    items: Dict[str, str] = field(default_factory=dict)

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def ping(self) -> None:
        return None


@dataclass
class JsonFileKeyValueStore:
    """
    Store every key in one JSON object file.

    The whole file is rewritten on each write, via a temporary file and an
    atomic rename.
    """

    path: str

    def _load(self) -> Dict[str, str]:
        file_path = Path(self.path)
        if not file_path.exists():
            return {}
        with file_path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, items: Dict[str, str]) -> None:
        file_path = Path(self.path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = str(value)
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if items.pop(key, None) is not None:
            self._save(items)

    def ping(self) -> None:
        try:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._load()
        except (OSError, ValueError) as exc:
            raise StorageConnectionError(f"Key-value file {self.path} is unusable: {exc}") from exc


@dataclass
class RedisKeyValueStore:
    """Redis-backed store; every key is prefixed with ``namespace``."""

    url: str
    namespace: str = "goai:store:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get_item(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(self._key(key))
        except redis_exceptions.ConnectionError as exc:
            raise StorageConnectionError(str(exc)) from exc
        if value is None:
            return None
        return value.decode("utf-8")

    def set_item(self, key: str, value: str) -> None:
        try:
            self.client.set(self._key(key), value)
        except redis_exceptions.ConnectionError as exc:
            raise StorageConnectionError(str(exc)) from exc

    def remove_item(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis_exceptions.ConnectionError as exc:
            raise StorageConnectionError(str(exc)) from exc

    def ping(self) -> None:
        try:
            self.client.ping()
        except redis_exceptions.ConnectionError as exc:
            raise StorageConnectionError(f"Redis is unreachable: {exc}") from exc
