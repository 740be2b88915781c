"""
Pydantic schemas for the storage HTTP API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class RecordListResponse(BaseModel):
    store: str
    records: List[Dict[str, Any]]
    total: int


class DeleteResponse(BaseModel):
    deleted: bool


class ImportResponse(BaseModel):
    store: str
    status: str = "ok"


class SettingRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=255)
    value: Any


class SettingResponse(BaseModel):
    message: str


class ServiceHealth(BaseModel):
    id: str
    name: str
    status: Literal["running", "error"]
    health: Literal["healthy", "unhealthy"]
    provider: Optional[str] = None
    environment: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    services: List[ServiceHealth]
