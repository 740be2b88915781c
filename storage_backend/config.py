"""
Configuration and settings for the storage layer.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the storage service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Which provider family to build: "server" (SQL) or "client" (embedded).
    storage_environment: Literal["server", "client"] = Field(
        default="server", validation_alias="STORAGE_ENVIRONMENT"
    )

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    database_pool_size: int = Field(default=5, validation_alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(
        default=10, validation_alias="DATABASE_MAX_OVERFLOW"
    )
    database_pool_timeout: float = Field(
        default=30, validation_alias="DATABASE_POOL_TIMEOUT"
    )
    database_pool_recycle: int = Field(
        default=1800, validation_alias="DATABASE_POOL_RECYCLE"
    )

    # Embedded object database (client environment)
    object_db_dir: Optional[str] = Field(
        default="data/objectdb", validation_alias="OBJECT_DB_DIR"
    )
    object_db_name: str = Field(default="goai-app-db", validation_alias="OBJECT_DB_NAME")

    # Flat key-value fallback (client environment)
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    kv_namespace: str = Field(
        default="goai:store:", validation_alias="STORAGE_KV_NAMESPACE"
    )
    kv_file: Optional[str] = Field(default=None, validation_alias="STORAGE_KV_FILE")

    exports_dir: str = Field(default="exports", validation_alias="EXPORTS_DIR")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
