"""
HTTP routes for the storage API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool

from storage_backend.bootstrap import StorageContext
from storage_backend.dependencies import (
    get_settings_service,
    get_storage_context,
    get_storage_service,
)
from storage_backend.errors import StorageError
from storage_backend.schemas import (
    DeleteResponse,
    HealthResponse,
    ImportResponse,
    RecordListResponse,
    ServiceHealth,
    SettingRequest,
    SettingResponse,
)
from storage_backend.service import StorageService
from storage_backend.settings_service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter()


def _coerce_id(record_id: str) -> Union[int, str]:
    # Path segments are strings; numeric keys are stored as integers.
    return int(record_id) if record_id.isdigit() else record_id


@router.get("/services/health", response_model=HealthResponse)
def services_health(context: StorageContext = Depends(get_storage_context)):
    environment = context.environment.value
    try:
        service = context.get_service()
    except StorageError as exc:
        logger.warning("Storage health check failed: %s", exc)
        entry = ServiceHealth(
            id="storage",
            name="Storage",
            status="error",
            health="unhealthy",
            environment=environment,
            detail=str(exc),
        )
    else:
        entry = ServiceHealth(
            id="storage",
            name="Storage",
            status="running",
            health="healthy",
            provider=service.provider.__class__.__name__,
            environment=environment,
        )
    return HealthResponse(services=[entry])


@router.get("/settings")
def get_all_settings(settings: SettingsService = Depends(get_settings_service)):
    return settings.get_all_settings()


@router.post("/settings", response_model=SettingResponse)
def save_setting(
    payload: SettingRequest,
    settings: SettingsService = Depends(get_settings_service),
):
    settings.set_setting(payload.key, payload.value)
    return SettingResponse(message="Setting saved successfully")


@router.get("/stores/{store}", response_model=RecordListResponse)
def list_records(
    store: str,
    request: Request,
    storage: StorageService = Depends(get_storage_service),
):
    # Any query parameter is an equality filter on that field.
    query = dict(request.query_params)
    records = storage.list(store, query or None)
    return RecordListResponse(store=store, records=records, total=len(records))


@router.post("/stores/{store}", status_code=201)
def create_record(
    store: str,
    record: Dict[str, Any] = Body(...),
    storage: StorageService = Depends(get_storage_service),
):
    return storage.create(store, record)


@router.get("/stores/{store}/export")
def export_records(
    store: str,
    storage: StorageService = Depends(get_storage_service),
):
    content = storage.export_store(store)
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{store}.json"'},
    )


@router.post("/stores/{store}/import", response_model=ImportResponse)
async def import_records(
    store: str,
    request: Request,
    storage: StorageService = Depends(get_storage_service),
):
    body = await request.body()
    await run_in_threadpool(storage.import_store, store, body)
    return ImportResponse(store=store)


@router.get("/stores/{store}/{record_id}")
def read_record(
    store: str,
    record_id: str,
    storage: StorageService = Depends(get_storage_service),
):
    record = storage.read(store, _coerce_id(record_id))
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.patch("/stores/{store}/{record_id}")
def update_record(
    store: str,
    record_id: str,
    fields: Dict[str, Any] = Body(...),
    storage: StorageService = Depends(get_storage_service),
):
    return storage.update(store, _coerce_id(record_id), fields)


@router.delete("/stores/{store}/{record_id}", response_model=DeleteResponse)
def delete_record(
    store: str,
    record_id: str,
    storage: StorageService = Depends(get_storage_service),
):
    return DeleteResponse(deleted=storage.delete(store, _coerce_id(record_id)))
