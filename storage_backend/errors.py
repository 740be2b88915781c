"""
Error kinds raised by storage providers and the facade.

Absence is not an error for every operation: ``read`` returns ``None`` and
``delete`` returns ``False`` when nothing matches, while ``update`` raises
``NotFoundError`` because there is no record to merge onto.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for the storage layer."""


class NotInitializedError(StorageError):
    """Raised when an operation runs before ``initialize()`` succeeded."""


class StorageConnectionError(StorageError, ConnectionError):
    """Raised when the backend cannot be reached. Never retried here."""


class ValidationError(StorageError, ValueError):
    """Raised for bad identifiers, empty updates and malformed payloads."""


class NotFoundError(StorageError, LookupError):
    """Raised when ``update`` targets an id that does not exist."""

    def __init__(self, store: str, record_id) -> None:
        super().__init__(f"Record {record_id!r} not found in store {store!r}")
        self.store = store
        self.record_id = record_id


class UnsupportedEnvironmentError(ValidationError):
    """Raised when an operation is invoked in the wrong execution context."""
