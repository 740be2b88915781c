"""
Provider selection and the per-process storage context.

``build_storage_service`` is the only place that decides which provider
backs the service. ``StorageContext`` is created once during application
bootstrap and passed to whoever needs storage; it builds and initializes the
service on first use and hands every later caller the same instance.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from storage_backend import objectdb
from storage_backend.config import Settings
from storage_backend.errors import UnsupportedEnvironmentError
from storage_backend.files import ClientFileTransfer, Download, ServerFileTransfer
from storage_backend.flat_store import FlatStoreProvider
from storage_backend.keyvalue import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)
from storage_backend.object_store import ObjectStoreProvider
from storage_backend.provider import StorageProvider
from storage_backend.relational import RelationalProvider
from storage_backend.service import StorageService

logger = logging.getLogger(__name__)


class Environment(str, enum.Enum):
    SERVER = "server"
    CLIENT = "client"


def build_key_value_store(settings: Settings) -> KeyValueStore:
    if settings.redis_url:
        return RedisKeyValueStore(url=settings.redis_url, namespace=settings.kv_namespace)
    if settings.kv_file:
        return JsonFileKeyValueStore(settings.kv_file)
    return InMemoryKeyValueStore()


def build_provider(settings: Settings, environment: Environment) -> StorageProvider:
    if environment is Environment.SERVER:
        if not settings.database_url:
            raise UnsupportedEnvironmentError(
                "The server environment needs DATABASE_URL for the relational provider"
            )
        return RelationalProvider(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
        )
    if objectdb.is_available(settings.object_db_dir):
        return ObjectStoreProvider(settings.object_db_dir, settings.object_db_name)
    logger.warning(
        "Object database unavailable at %r; falling back to the flat store",
        settings.object_db_dir,
    )
    return FlatStoreProvider(build_key_value_store(settings))


def build_storage_service(
    settings: Settings,
    environment: Environment,
    *,
    deliver: Optional[Callable[[Download], None]] = None,
) -> StorageService:
    """Construct (but do not initialize) the service for ``environment``."""
    environment = Environment(environment)
    provider = build_provider(settings, environment)
    if environment is Environment.SERVER:
        files = ServerFileTransfer(settings.exports_dir)
    else:
        files = ClientFileTransfer(deliver)
    logger.info(
        "Storage service for %s environment uses %s",
        environment.value,
        provider.__class__.__name__,
    )
    return StorageService(provider, files)


class StorageContext:
    """
    Owns the one ``StorageService`` of a process (or client session).

    The first ``get_service()`` call installs a shared ``Future`` and builds
    the service; concurrent first callers wait on that same future instead of
    building their own. A failed build is reported to every waiter and then
    cleared so a later call can try again.
    """

    def __init__(
        self,
        settings: Settings,
        environment: Optional[Environment] = None,
        factory: Callable[[Settings, Environment], StorageService] = build_storage_service,
    ):
        self.settings = settings
        self.environment = Environment(environment or settings.storage_environment)
        self._factory = factory
        self._future: Optional[Future] = None
        self._cell_lock = threading.Lock()

    def get_service(self) -> StorageService:
        with self._cell_lock:
            future = self._future
            owner = future is None
            if owner:
                future = self._future = Future()
        if owner:
            try:
                service = self._factory(self.settings, self.environment)
                service.initialize()
            except BaseException as exc:
                with self._cell_lock:
                    if self._future is future:
                        self._future = None
                future.set_exception(exc)
                raise
            future.set_result(service)
        return future.result()

    def reset(self) -> None:
        with self._cell_lock:
            self._future = None
