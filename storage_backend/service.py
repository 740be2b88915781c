"""
StorageService: the single entry point application code talks to.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from storage_backend.files import FileTransfer, validate_file_name
from storage_backend.provider import Record, StorageProvider


class StorageService:
    """
    Delegates every operation to one provider, unchanged.

    Errors from the provider pass through untouched. File helpers go through
    the ``FileTransfer`` chosen for the current environment.
    """

    def __init__(self, provider: StorageProvider, files: FileTransfer):
        self.provider = provider
        self.files = files

    def initialize(self) -> None:
        self.provider.initialize()

    def create(self, store: str, record: Mapping[str, Any]) -> Record:
        return self.provider.create(store, record)

    def read(self, store: str, record_id: Any) -> Optional[Record]:
        return self.provider.read(store, record_id)

    def update(self, store: str, record_id: Any, fields: Mapping[str, Any]) -> Record:
        return self.provider.update(store, record_id, fields)

    def delete(self, store: str, record_id: Any) -> bool:
        return self.provider.delete(store, record_id)

    def list(
        self, store: str, query: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        return self.provider.list(store, query)

    def export_store(self, store: str) -> str:
        return self.provider.export_store(store)

    def import_store(self, store: str, payload: str | bytes) -> None:
        self.provider.import_store(store, payload)

    def export_to_file(self, store: str, file_name: str) -> Any:
        """
        Export ``store`` and hand the JSON to the environment's file transfer.

        Returns the written ``Path`` on a server, or the ``Download`` on a client.
        """
        validate_file_name(file_name)
        return self.files.write_export(file_name, self.export_store(store))

    def import_from_file(self, store: str, source: Any) -> None:
        self.import_store(store, self.files.read_import(source))
