"""
Capability contract shared by every storage backend.

A provider owns its connection state and exposes CRUD plus JSON
import/export over named stores. Stores are addressed by name at runtime, so
every store and field name is checked against ``IDENTIFIER_PATTERN`` before
it reaches a backend.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Protocol

from storage_backend.errors import ValidationError

Record = Dict[str, Any]

ID_FIELD = "id"
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


class StorageProvider(Protocol):
    """Operations every backend implements."""

    def initialize(self) -> None:
        ...

    def create(self, store: str, record: Mapping[str, Any]) -> Record:
        ...

    def read(self, store: str, record_id: Any) -> Optional[Record]:
        ...

    def update(
        self, store: str, record_id: Any, fields: Mapping[str, Any]
    ) -> Record:
        ...

    def delete(self, store: str, record_id: Any) -> bool:
        ...

    def list(
        self, store: str, query: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        ...

    def export_store(self, store: str) -> str:
        ...

    def import_store(self, store: str, payload: str | bytes) -> None:
        ...


def validate_identifier(name: str) -> str:
    """Return ``name`` unchanged or raise ``ValidationError``."""
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(f"Invalid table/column name: {name!r}")
    return name


def validate_new_record(record: Mapping[str, Any]) -> Record:
    if not isinstance(record, Mapping):
        raise ValidationError("Record must be a mapping of field names to values")
    if ID_FIELD in record:
        raise ValidationError("Records are created without an id; the backend assigns it")
    for field in record:
        validate_identifier(field)
    return dict(record)


def validate_update_fields(fields: Mapping[str, Any]) -> Record:
    if not isinstance(fields, Mapping):
        raise ValidationError("Update fields must be a mapping")
    if not fields:
        raise ValidationError("No fields to update")
    if ID_FIELD in fields:
        raise ValidationError("The id field cannot be updated")
    for field in fields:
        validate_identifier(field)
    return dict(fields)


def validate_query(query: Optional[Mapping[str, Any]]) -> Record:
    if not query:
        return {}
    for field in query:
        validate_identifier(field)
    return dict(query)


def validate_record_id(record_id: Any) -> Any:
    """Accept ``None`` (backend assigns one) or a str, int or float id."""
    if record_id is None:
        return None
    if isinstance(record_id, bool) or not isinstance(record_id, (int, float, str)):
        raise ValidationError(f"Invalid record id: {record_id!r}")
    return record_id


def validate_import_records(records: List[Record]) -> List[Record]:
    for record in records:
        for field in record:
            validate_identifier(field)
        validate_record_id(record.get(ID_FIELD))
    return records


def _field_matches(stored: Any, expected: Any) -> bool:
    if stored == expected:
        return True
    # Query strings carry text; compare them to stored scalars by their JSON form.
    if isinstance(expected, str) and isinstance(stored, (bool, int, float)):
        return json.dumps(stored) == expected
    return False


def matches_query(record: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    return all(
        field in record and _field_matches(record[field], value)
        for field, value in query.items()
    )


def dump_records(records: List[Record]) -> str:
    """Serialize records as a pretty-printed JSON array."""
    return json.dumps(records, indent=2, ensure_ascii=False, default=str)


def parse_records(payload: str | bytes) -> List[Record]:
    """
    Parse an import payload into a list of records.

    Raises ``ValidationError`` for malformed JSON, a non-array payload or a
    non-object element, before any backend is touched.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Import payload is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ValidationError("Import payload must be a JSON array of objects")
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValidationError(f"Import element {index} is not a JSON object")
    return data
