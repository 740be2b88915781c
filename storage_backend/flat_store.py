"""
Flat-store provider: each store is one JSON array under one key.

Every operation reads the whole array, changes it in memory and writes it
back. There are no transactions; concurrent writers from different processes
race and the last write wins.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, List, Mapping, Optional

from storage_backend.errors import NotFoundError, ValidationError
from storage_backend.keyvalue import KeyValueStore
from storage_backend.provider import (
    ID_FIELD,
    Record,
    dump_records,
    matches_query,
    parse_records,
    validate_identifier,
    validate_import_records,
    validate_new_record,
    validate_query,
    validate_update_fields,
)

logger = logging.getLogger(__name__)


def new_record_id() -> str:
    return uuid.uuid4().hex


class FlatStoreProvider:
    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def initialize(self) -> None:
        self.kv.ping()

    def _load(self, store: str) -> List[Record]:
        raw = self.kv.get_item(validate_identifier(store))
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ValidationError(f"Store {store!r} does not hold valid JSON") from exc
        if not isinstance(data, list):
            raise ValidationError(f"Store {store!r} does not hold a JSON array")
        return data

    def _save(self, store: str, records: List[Record]) -> None:
        self.kv.set_item(store, json.dumps(records, ensure_ascii=False, default=str))

    def create(self, store: str, record: Mapping[str, Any]) -> Record:
        value = validate_new_record(record)
        records = self._load(store)
        created = {**value, ID_FIELD: new_record_id()}
        records.append(created)
        self._save(store, records)
        return created

    def read(self, store: str, record_id: Any) -> Optional[Record]:
        for record in self._load(store):
            if record.get(ID_FIELD) == record_id:
                return record
        return None

    def update(self, store: str, record_id: Any, fields: Mapping[str, Any]) -> Record:
        changes = validate_update_fields(fields)
        records = self._load(store)
        for index, record in enumerate(records):
            if record.get(ID_FIELD) == record_id:
                updated = {**record, **changes}
                records[index] = updated
                self._save(store, records)
                return updated
        raise NotFoundError(store, record_id)

    def delete(self, store: str, record_id: Any) -> bool:
        records = self._load(store)
        remaining = [record for record in records if record.get(ID_FIELD) != record_id]
        if len(remaining) == len(records):
            return False
        self._save(store, remaining)
        return True

    def list(
        self, store: str, query: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        criteria = validate_query(query)
        records = self._load(store)
        if criteria:
            records = [record for record in records if matches_query(record, criteria)]
        return records

    def export_store(self, store: str) -> str:
        return dump_records(self.list(store))

    def import_store(self, store: str, payload: str | bytes) -> None:
        incoming = validate_import_records(parse_records(payload))
        if not incoming:
            return
        merged = {record.get(ID_FIELD): record for record in self._load(store)}
        for record in incoming:
            if record.get(ID_FIELD) is None:
                record = {**record, ID_FIELD: new_record_id()}
            merged[record[ID_FIELD]] = record
        self._save(store, list(merged.values()))
        logger.info("Imported %d records into %s", len(incoming), store)
