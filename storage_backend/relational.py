"""
Relational storage provider backed by a SQLAlchemy connection pool.

Store names are table names and record fields are column names. Because both
are dynamic, statements come from ``storage_backend.sql`` instead of a typed
query builder. Accepts any SQLAlchemy URL (Postgres in production, SQLite for
tests).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from storage_backend import sql
from storage_backend.errors import (
    NotFoundError,
    NotInitializedError,
    StorageConnectionError,
    ValidationError,
)
from storage_backend.provider import (
    Record,
    dump_records,
    parse_records,
    validate_identifier,
    validate_import_records,
    validate_new_record,
    validate_query,
    validate_update_fields,
)

logger = logging.getLogger(__name__)


class RelationalProvider:
    """
    Storage provider for SQL databases.

    Every operation borrows one pooled connection for one short statement;
    ``import_store`` is the only multi-statement transaction.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: float = 30,
        pool_recycle: int = 1800,
    ):
        if not database_url:
            raise ValidationError("RelationalProvider requires a database URL")
        self.database_url = database_url
        self.pool_options = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
        }
        self.engine: Optional[Engine] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _create_engine(self) -> Engine:
        options = dict(self.pool_options)
        if self.database_url.startswith("sqlite"):
            # SQLite uses its own pool classes without size/overflow knobs.
            options = {"pool_recycle": options["pool_recycle"]}
        return create_engine(
            self.database_url,
            future=True,
            pool_pre_ping=True,
            **options,
        )

    def initialize(self) -> None:
        if self._initialized:
            logger.info("RelationalProvider already initialized")
            return
        engine = None
        try:
            engine = self._create_engine()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            if engine is not None:
                engine.dispose()
            logger.error("Failed to connect to the database: %s", exc)
            raise StorageConnectionError(f"Database is unreachable: {exc}") from exc
        self.engine = engine
        self._initialized = True
        logger.info("Connected to the database via RelationalProvider")

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._initialized = False

    def _check_initialized(self) -> Engine:
        if not self._initialized or self.engine is None:
            raise NotInitializedError(
                "RelationalProvider is not initialized; call initialize() first"
            )
        return self.engine

    @contextmanager
    def _connection(
        self, store: str, operation: str, *, write: bool = False
    ) -> Iterator[Connection]:
        engine = self._check_initialized()
        try:
            conn = engine.connect()
        except SQLAlchemyError as exc:
            # No statement has run; a failure here is an unreachable database.
            logger.exception("%s on %s: connection unavailable", operation, store)
            raise StorageConnectionError(str(exc)) from exc
        try:
            with conn:
                if write:
                    with conn.begin():
                        yield conn
                else:
                    yield conn
        except (PoolTimeoutError, InterfaceError) as exc:
            logger.exception("%s on %s: connection unavailable", operation, store)
            raise StorageConnectionError(str(exc)) from exc
        except DBAPIError as exc:
            logger.exception("%s on %s failed", operation, store)
            if exc.connection_invalidated:
                raise StorageConnectionError(str(exc)) from exc
            raise
        except SQLAlchemyError:
            logger.exception("%s on %s failed", operation, store)
            raise

    def create(self, store: str, record: Mapping[str, Any]) -> Record:
        values = validate_new_record(record)
        statement = sql.insert_statement(store, values)
        with self._connection(store, "create", write=True) as conn:
            row = conn.execute(statement.clause(), statement.params).mappings().one()
            return dict(row)

    def read(self, store: str, record_id: Any) -> Optional[Record]:
        statement = sql.select_by_id_statement(store, record_id)
        with self._connection(store, "read") as conn:
            row = conn.execute(statement.clause(), statement.params).mappings().first()
            return dict(row) if row is not None else None

    def update(self, store: str, record_id: Any, fields: Mapping[str, Any]) -> Record:
        values = validate_update_fields(fields)
        statement = sql.update_statement(store, record_id, values)
        with self._connection(store, "update", write=True) as conn:
            row = conn.execute(statement.clause(), statement.params).mappings().first()
        if row is None:
            raise NotFoundError(store, record_id)
        return dict(row)

    def delete(self, store: str, record_id: Any) -> bool:
        statement = sql.delete_statement(store, record_id)
        with self._connection(store, "delete", write=True) as conn:
            result = conn.execute(statement.clause(), statement.params)
            return (result.rowcount or 0) > 0

    def list(
        self, store: str, query: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        statement = sql.select_statement(store, validate_query(query))
        with self._connection(store, "list") as conn:
            rows = conn.execute(statement.clause(), statement.params).mappings().all()
            return [dict(row) for row in rows]

    def export_store(self, store: str) -> str:
        return dump_records(self.list(store))

    def import_store(self, store: str, payload: str | bytes) -> None:
        self._check_initialized()
        records = validate_import_records(parse_records(payload))
        if not records:
            return
        validate_identifier(store)
        # All statements exist before the transaction opens.
        statements = [sql.upsert_statement(store, record) for record in records]
        with self._connection(store, "import", write=True) as conn:
            for statement in statements:
                conn.execute(statement.clause(), statement.params)
        logger.info("Imported %d records into %s", len(statements), store)
