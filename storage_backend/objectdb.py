"""
Embedded, versioned object database.

A database is a sqlite file holding named object stores of JSON values. The
schema can only change inside an upgrade transaction, which runs when the
database is opened at a higher version than the one on disk. Other open
connections to the same file are told about the version change and are
expected to close.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

CATALOG_TABLE = "__object_stores"
READONLY = "readonly"
READWRITE = "readwrite"

UpgradeCallback = Callable[["UpgradeTransaction", int, int], None]
VersionChangeCallback = Callable[["ObjectDatabase", int], None]


class ObjectDatabaseError(Exception):
    """Base exception for the object database engine."""


class VersionError(ObjectDatabaseError):
    """Raised when opening at a version lower than the stored one."""


class InvalidStateError(ObjectDatabaseError):
    """Raised when using a closed connection."""


class NotFoundError(ObjectDatabaseError):
    """Raised when addressing an object store that does not exist."""


class ConstraintError(ObjectDatabaseError):
    """Raised when ``add`` meets an existing key."""


class ReadOnlyError(ObjectDatabaseError):
    """Raised when writing inside a readonly transaction."""


class DataError(ObjectDatabaseError):
    """Raised for values or keys the engine cannot store."""


@dataclass(frozen=True)
class StoreSchema:
    name: str
    key_path: str
    auto_increment: bool


# Open connections per database file, used to deliver version change events.
_open_connections: Dict[str, "weakref.WeakSet[ObjectDatabase]"] = {}
_registry_lock = threading.Lock()


def database_path(directory: str, name: str) -> str:
    return os.path.join(directory, f"{name}.sqlite3")


def is_available(directory: Optional[str]) -> bool:
    """Return True when databases can be created under ``directory``."""
    if not directory:
        return False
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError:
        return False
    return os.access(directory, os.W_OK)


def _connect(path: str) -> sqlite3.Connection:
    # Autocommit mode; transactions are opened explicitly so DDL is transactional.
    conn = sqlite3.connect(path, isolation_level=None, timeout=30)
    conn.row_factory = sqlite3.Row
    return conn


def _table_name(store: str) -> str:
    return '"os_' + store.replace('"', '""') + '"'


def _check_key(key: Any) -> Any:
    if isinstance(key, bool) or not isinstance(key, (int, float, str)):
        raise DataError(f"Invalid key: {key!r}")
    return key


def _ensure_catalog(conn: sqlite3.Connection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {CATALOG_TABLE} (
            name TEXT PRIMARY KEY,
            key_path TEXT NOT NULL,
            auto_increment INTEGER NOT NULL,
            current_key INTEGER NOT NULL DEFAULT 0
        )
        """
    )


def _read_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def _read_schemas(conn: sqlite3.Connection) -> Dict[str, StoreSchema]:
    rows = conn.execute(
        f"SELECT name, key_path, auto_increment FROM {CATALOG_TABLE}"
    ).fetchall()
    return {
        row["name"]: StoreSchema(row["name"], row["key_path"], bool(row["auto_increment"]))
        for row in rows
    }


class ObjectStore:
    """One object store, bound to one open transaction."""

    def __init__(self, conn: sqlite3.Connection, schema: StoreSchema, mode: str):
        self._conn = conn
        self.schema = schema
        self.mode = mode
        self._table = _table_name(schema.name)

    @property
    def name(self) -> str:
        return self.schema.name

    def _check_writable(self) -> None:
        if self.mode != READWRITE:
            raise ReadOnlyError(f"Transaction on {self.name!r} is readonly")

    def _next_key(self) -> int:
        row = self._conn.execute(
            f"SELECT current_key FROM {CATALOG_TABLE} WHERE name = ?", (self.name,)
        ).fetchone()
        key = int(row["current_key"]) + 1
        self._bump_generator(key)
        return key

    def _bump_generator(self, key: Any) -> None:
        if not self.schema.auto_increment or isinstance(key, str):
            return
        self._conn.execute(
            f"UPDATE {CATALOG_TABLE} SET current_key = MAX(current_key, ?) WHERE name = ?",
            (int(key), self.name),
        )

    def _prepare(self, value: Dict[str, Any]) -> tuple[Any, str]:
        if not isinstance(value, dict):
            raise DataError("Only JSON objects can be stored")
        key_path = self.schema.key_path
        if key_path in value and value[key_path] is not None:
            key = _check_key(value[key_path])
            self._bump_generator(key)
        elif self.schema.auto_increment:
            key = self._next_key()
            value[key_path] = key
        else:
            raise DataError(f"Value has no {key_path!r} and the store has no key generator")
        try:
            encoded = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            raise DataError(f"Value is not serializable: {exc}") from exc
        return key, encoded

    def add(self, value: Dict[str, Any]) -> Any:
        self._check_writable()
        value = dict(value)
        key, encoded = self._prepare(value)
        try:
            self._conn.execute(
                f"INSERT INTO {self._table} (record_key, value) VALUES (?, ?)", (key, encoded)
            )
        except sqlite3.IntegrityError as exc:
            raise ConstraintError(f"Key {key!r} already exists in {self.name!r}") from exc
        return key

    def put(self, value: Dict[str, Any]) -> Any:
        self._check_writable()
        value = dict(value)
        key, encoded = self._prepare(value)
        self._conn.execute(
            f"""
            INSERT INTO {self._table} (record_key, value) VALUES (?, ?)
            ON CONFLICT(record_key) DO UPDATE SET value = excluded.value
            """,
            (key, encoded),
        )
        return key

    def get(self, key: Any) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            f"SELECT value FROM {self._table} WHERE record_key = ?", (_check_key(key),)
        ).fetchone()
        return json.loads(row["value"]) if row else None

    def delete(self, key: Any) -> None:
        self._check_writable()
        self._conn.execute(f"DELETE FROM {self._table} WHERE record_key = ?", (_check_key(key),))

    def get_all(self) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            f"SELECT value FROM {self._table} ORDER BY record_key"
        ).fetchall()
        return [json.loads(row["value"]) for row in rows]

    def count(self) -> int:
        return int(self._conn.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()[0])


class Transaction:
    def __init__(self, conn: sqlite3.Connection, schemas: Dict[str, StoreSchema], mode: str):
        self._conn = conn
        self._schemas = schemas
        self.mode = mode

    def object_store(self, name: str) -> ObjectStore:
        schema = self._schemas.get(name)
        if schema is None:
            raise NotFoundError(f"Object store {name!r} is not part of this transaction")
        return ObjectStore(self._conn, schema, self.mode)


class UpgradeTransaction(Transaction):
    """The only transaction that may create object stores."""

    def __init__(self, conn: sqlite3.Connection, schemas: Dict[str, StoreSchema]):
        super().__init__(conn, schemas, READWRITE)

    @property
    def object_store_names(self) -> List[str]:
        return sorted(self._schemas)

    def create_object_store(
        self, name: str, *, key_path: str = "id", auto_increment: bool = False
    ) -> ObjectStore:
        if name in self._schemas:
            raise ConstraintError(f"Object store {name!r} already exists")
        self._conn.execute(
            f"CREATE TABLE {_table_name(name)} (record_key PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._conn.execute(
            f"INSERT INTO {CATALOG_TABLE} (name, key_path, auto_increment) VALUES (?, ?, ?)",
            (name, key_path, int(auto_increment)),
        )
        schema = StoreSchema(name, key_path, auto_increment)
        self._schemas[name] = schema
        return ObjectStore(self._conn, schema, READWRITE)


class ObjectDatabase:
    """
    A logical connection to one database at one version.

    Each transaction borrows a short-lived sqlite connection, so the object
    can be shared between threads.
    """

    def __init__(self, path: str, name: str, version: int, schemas: Dict[str, StoreSchema]):
        self.path = path
        self.name = name
        self.version = version
        self._schemas = schemas
        self._closed = False
        self.on_versionchange: Optional[VersionChangeCallback] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def object_store_names(self) -> List[str]:
        return sorted(self._schemas)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with _registry_lock:
            connections = _open_connections.get(self.path)
            if connections is not None:
                connections.discard(self)

    def _fire_versionchange(self, new_version: int) -> None:
        callback = self.on_versionchange
        if callback is not None:
            callback(self, new_version)
        else:
            logger.warning(
                "Database %s is moving to version %d; open connection left untouched",
                self.name,
                new_version,
            )

    @contextmanager
    def transaction(self, store: str, mode: str = READONLY) -> Iterator[Transaction]:
        if mode not in (READONLY, READWRITE):
            raise ValueError(f"Unknown transaction mode: {mode}")
        if self._closed:
            raise InvalidStateError(f"Connection to {self.name!r} is closed")
        if store not in self._schemas:
            raise NotFoundError(f"Object store {store!r} does not exist in {self.name!r}")
        conn = _connect(self.path)
        try:
            disk_version = _read_version(conn)
            if disk_version > self.version:
                # Another process upgraded the file since this connection opened.
                self._fire_versionchange(disk_version)
                self.close()
                raise InvalidStateError(
                    f"Database {self.name!r} was upgraded to version {disk_version}"
                )
            conn.execute("BEGIN IMMEDIATE" if mode == READWRITE else "BEGIN")
            try:
                yield Transaction(conn, {store: self._schemas[store]}, mode)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()


def open_database(
    directory: str,
    name: str,
    version: Optional[int] = None,
    on_upgrade: Optional[UpgradeCallback] = None,
) -> ObjectDatabase:
    """
    Open ``name`` under ``directory``.

    ``version=None`` opens at the stored version (1 for a new database). A
    higher version notifies other open connections, then runs ``on_upgrade``
    and the version bump in a single sqlite transaction.
    """
    os.makedirs(directory, exist_ok=True)
    path = database_path(directory, name)
    conn = _connect(path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            _ensure_catalog(conn)
            old_version = _read_version(conn)
            target = version if version is not None else max(old_version, 1)
            if target < old_version:
                raise VersionError(
                    f"Requested version {target} is lower than stored version {old_version}"
                )
            schemas = _read_schemas(conn)
            if target > old_version:
                _notify_versionchange(path, target)
                if on_upgrade is not None:
                    on_upgrade(UpgradeTransaction(conn, schemas), old_version, target)
                conn.execute(f"PRAGMA user_version = {int(target)}")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()

    db = ObjectDatabase(path, name, target, schemas)
    with _registry_lock:
        _open_connections.setdefault(path, weakref.WeakSet()).add(db)
    if target > old_version:
        logger.info("Upgraded object database %s from version %d to %d", name, old_version, target)
    return db


def _notify_versionchange(path: str, new_version: int) -> None:
    with _registry_lock:
        connections = list(_open_connections.get(path, ()))
    for db in connections:
        if not db.closed:
            db._fire_versionchange(new_version)
