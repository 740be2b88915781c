"""
Application settings stored as key/value records in the ``settings`` store.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from storage_backend.errors import ValidationError
from storage_backend.service import StorageService

SETTINGS_STORE = "settings"


def _decode(raw: Any) -> Any:
    # JSON columns come back already decoded on some drivers.
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        # Written through the generic store API as plain text.
        return raw


class SettingsService:
    """Values are JSON-encoded so every backend stores them as text."""

    def __init__(self, storage: StorageService, store: str = SETTINGS_STORE):
        self.storage = storage
        self.store = store

    def _normalize(self, key: str | None) -> str:
        value = key.strip() if isinstance(key, str) else ""
        if not value:
            raise ValidationError("Setting key must be a non-empty string")
        return value

    def get_setting(self, key: str) -> Optional[Any]:
        rows = self.storage.list(self.store, {"key": self._normalize(key)})
        if not rows:
            return None
        return _decode(rows[0]["value"])

    def set_setting(self, key: str, value: Any) -> None:
        key = self._normalize(key)
        encoded = json.dumps(value, ensure_ascii=False)
        rows = self.storage.list(self.store, {"key": key})
        if rows:
            self.storage.update(self.store, rows[0]["id"], {"value": encoded})
        else:
            self.storage.create(self.store, {"key": key, "value": encoded})

    def get_all_settings(self) -> Dict[str, Any]:
        return {
            row["key"]: _decode(row["value"])
            for row in self.storage.list(self.store)
        }
