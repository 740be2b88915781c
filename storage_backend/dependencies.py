"""
Dependency wiring for the FastAPI app.

The ``StorageContext`` lives on ``app.state``; it is created once by
``create_app`` and every request resolves the service through it.
"""

from __future__ import annotations

from fastapi import Depends, Request

from storage_backend.bootstrap import StorageContext
from storage_backend.service import StorageService
from storage_backend.settings_service import SettingsService


def get_storage_context(request: Request) -> StorageContext:
    return request.app.state.storage_context


def get_storage_service(
    context: StorageContext = Depends(get_storage_context),
) -> StorageService:
    return context.get_service()


def get_settings_service(
    storage: StorageService = Depends(get_storage_service),
) -> SettingsService:
    return SettingsService(storage)
