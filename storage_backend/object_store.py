"""
Transactional storage provider over the embedded object database.

Object stores can only be created in an upgrade transaction, so the provider
bumps the database version whenever a caller addresses a store that does not
exist yet. Callers never see versions.

Known limitations:
- Cross-connection schema consistency is best-effort. When another connection
  upgrades the database, this provider's connection is closed and reopened
  on the next call.
- ``import_store`` writes each record in its own transaction, so a failure
  part-way through leaves the records written before it in place.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Any, Callable, List, Mapping, Optional

from storage_backend import objectdb
from storage_backend.errors import (
    NotFoundError,
    StorageConnectionError,
    UnsupportedEnvironmentError,
    ValidationError,
)
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

DEFAULT_DB_NAME = "goai-app-db"
MAX_UPGRADE_ATTEMPTS = 3


class ObjectStoreProvider:
    def __init__(self, directory: Optional[str], db_name: str = DEFAULT_DB_NAME):
        self.directory = directory
        self.db_name = db_name
        self._db: Optional[objectdb.ObjectDatabase] = None
        self._schema_lock = threading.Lock()

    @property
    def version(self) -> Optional[int]:
        return self._db.version if self._db is not None else None

    def initialize(self) -> None:
        if self._db is not None and not self._db.closed:
            return
        if not objectdb.is_available(self.directory):
            raise UnsupportedEnvironmentError(
                f"Object database is not available in {self.directory!r}"
            )
        self._db = self._open()

    def _open(
        self, version: Optional[int] = None, store: Optional[str] = None
    ) -> objectdb.ObjectDatabase:
        def upgrade(tx: objectdb.UpgradeTransaction, old_version: int, new_version: int):
            if store is not None and store not in tx.object_store_names:
                tx.create_object_store(store, key_path=ID_FIELD, auto_increment=True)

        try:
            db = objectdb.open_database(
                self.directory, self.db_name, version=version, on_upgrade=upgrade
            )
        except sqlite3.Error as exc:
            logger.exception("Failed to open object database %s", self.db_name)
            raise StorageConnectionError(str(exc)) from exc
        db.on_versionchange = self._on_versionchange
        return db

    def _on_versionchange(self, db: objectdb.ObjectDatabase, new_version: int) -> None:
        db.close()
        logger.warning(
            "Object database %s was upgraded to version %d elsewhere; "
            "connection closed and will reopen on next use",
            self.db_name,
            new_version,
        )

    def _ensure_store_exists(self, store: str) -> objectdb.ObjectDatabase:
        validate_identifier(store)
        db = self._db
        if db is not None and not db.closed and store in db.object_store_names:
            return db
        with self._schema_lock:
            for _ in range(MAX_UPGRADE_ATTEMPTS):
                db = self._db
                if db is not None and not db.closed and store in db.object_store_names:
                    return db
                # Reopen at the stored version to pick up stores created elsewhere.
                if db is not None:
                    db.close()
                self._db = None
                self.initialize()
                db = self._db
                if store in db.object_store_names:
                    return db
                db.close()
                try:
                    self._db = self._open(version=db.version + 1, store=store)
                except objectdb.VersionError:
                    logger.warning("Lost upgrade race for store %s; retrying", store)
                    continue
                if store in self._db.object_store_names:
                    logger.info("Created object store %s (version %d)", store, self._db.version)
                    return self._db
        raise StorageConnectionError(f"Could not create object store {store!r}")

    def _run(
        self,
        store: str,
        operation: str,
        mode: str,
        action: Callable[[objectdb.ObjectStore], Any],
    ):
        db = self._ensure_store_exists(store)
        try:
            try:
                with db.transaction(store, mode) as tx:
                    return action(tx.object_store(store))
            except objectdb.InvalidStateError:
                # Closed by a version change before the transaction began.
                db = self._ensure_store_exists(store)
                with db.transaction(store, mode) as tx:
                    return action(tx.object_store(store))
        except objectdb.DataError as exc:
            raise ValidationError(str(exc)) from exc
        except sqlite3.OperationalError as exc:
            logger.exception("%s on %s failed", operation, store)
            raise StorageConnectionError(str(exc)) from exc
        except (objectdb.ObjectDatabaseError, sqlite3.Error):
            logger.exception("%s on %s failed", operation, store)
            raise

    def create(self, store: str, record: Mapping[str, Any]) -> Record:
        value = validate_new_record(record)

        def action(object_store: objectdb.ObjectStore) -> Record:
            key = object_store.add(value)
            return {**value, ID_FIELD: key}

        return self._run(store, "create", objectdb.READWRITE, action)

    def read(self, store: str, record_id: Any) -> Optional[Record]:
        return self._run(
            store, "read", objectdb.READONLY, lambda object_store: object_store.get(record_id)
        )

    def update(self, store: str, record_id: Any, fields: Mapping[str, Any]) -> Record:
        changes = validate_update_fields(fields)

        def action(object_store: objectdb.ObjectStore) -> Record:
            existing = object_store.get(record_id)
            if existing is None:
                raise NotFoundError(store, record_id)
            merged = {**existing, **changes}
            object_store.put(merged)
            return merged

        return self._run(store, "update", objectdb.READWRITE, action)

    def delete(self, store: str, record_id: Any) -> bool:
        def action(object_store: objectdb.ObjectStore) -> bool:
            if object_store.get(record_id) is None:
                return False
            object_store.delete(record_id)
            return True

        return self._run(store, "delete", objectdb.READWRITE, action)

    def list(
        self, store: str, query: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        criteria = validate_query(query)
        records = self._run(
            store, "list", objectdb.READONLY, lambda object_store: object_store.get_all()
        )
        if criteria:
            records = [record for record in records if matches_query(record, criteria)]
        return records

    def export_store(self, store: str) -> str:
        return dump_records(self.list(store))

    def import_store(self, store: str, payload: str | bytes) -> None:
        records = validate_import_records(parse_records(payload))
        if not records:
            return
        for record in records:
            self._run(
                store,
                "import",
                objectdb.READWRITE,
                lambda object_store, record=record: object_store.put(record),
            )
        logger.info("Imported %d records into %s", len(records), store)
