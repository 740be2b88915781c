"""
Dynamic SQL assembly for the relational provider.

Table and column names are only known at runtime and cannot be bound as
parameters, so they are validated and double-quoted here. Values are always
bound. Nothing outside this module interpolates identifiers into SQL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.sql.expression import TextClause

from storage_backend.errors import ValidationError
from storage_backend.provider import ID_FIELD, validate_identifier


@dataclass(frozen=True)
class Statement:
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)

    def clause(self) -> TextClause:
        return text(self.sql)


def quote(name: str) -> str:
    return f'"{validate_identifier(name)}"'


def _bind(values: Mapping[str, Any], prefix: str = "p") -> tuple[list[str], list[str], dict]:
    columns: list[str] = []
    placeholders: list[str] = []
    params: dict = {}
    for index, (column, value) in enumerate(values.items()):
        key = f"{prefix}{index}"
        columns.append(quote(column))
        placeholders.append(f":{key}")
        params[key] = value
    return columns, placeholders, params


def _where(query: Mapping[str, Any]) -> tuple[str, dict]:
    if not query:
        return "", {}
    columns, placeholders, params = _bind(query, prefix="q")
    conditions = " AND ".join(
        f"{column} = {placeholder}" for column, placeholder in zip(columns, placeholders)
    )
    return f" WHERE {conditions}", params


def insert_statement(table: str, values: Mapping[str, Any]) -> Statement:
    table_sql = quote(table)
    if not values:
        return Statement(f"INSERT INTO {table_sql} DEFAULT VALUES RETURNING *")
    columns, placeholders, params = _bind(values)
    return Statement(
        f"INSERT INTO {table_sql} ({', '.join(columns)}) "
        f"VALUES ({', '.join(placeholders)}) RETURNING *",
        params,
    )


def select_statement(table: str, query: Optional[Mapping[str, Any]] = None) -> Statement:
    where_sql, params = _where(query or {})
    return Statement(f"SELECT * FROM {quote(table)}{where_sql}", params)


def select_by_id_statement(table: str, record_id: Any) -> Statement:
    return select_statement(table, {ID_FIELD: record_id})


def update_statement(table: str, record_id: Any, values: Mapping[str, Any]) -> Statement:
    if not values:
        raise ValidationError("No fields to update")
    columns, placeholders, params = _bind(values)
    assignments = ", ".join(
        f"{column} = {placeholder}" for column, placeholder in zip(columns, placeholders)
    )
    params["record_id"] = record_id
    return Statement(
        f"UPDATE {quote(table)} SET {assignments} "
        f"WHERE {quote(ID_FIELD)} = :record_id RETURNING *",
        params,
    )


def delete_statement(table: str, record_id: Any) -> Statement:
    return Statement(
        f"DELETE FROM {quote(table)} WHERE {quote(ID_FIELD)} = :record_id",
        {"record_id": record_id},
    )


def upsert_statement(table: str, values: Mapping[str, Any]) -> Statement:
    """
    Insert a record, replacing every non-id column when its id already exists.

    Records without an id, or with a null one, are plain inserts so the
    database assigns the id.
    """
    if values.get(ID_FIELD) is None:
        return insert_statement(
            table, {column: value for column, value in values.items() if column != ID_FIELD}
        )
    columns, placeholders, params = _bind(values)
    updates = [
        f"{quote(column)} = EXCLUDED.{quote(column)}"
        for column in values
        if column != ID_FIELD
    ]
    if updates:
        conflict_sql = f"DO UPDATE SET {', '.join(updates)}"
    else:
        conflict_sql = "DO NOTHING"
    return Statement(
        f"INSERT INTO {quote(table)} ({', '.join(columns)}) "
        f"VALUES ({', '.join(placeholders)}) "
        f"ON CONFLICT ({quote(ID_FIELD)}) {conflict_sql}",
        params,
    )
