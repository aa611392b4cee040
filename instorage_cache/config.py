"""
Configuration for the in-storage cache.

Uses pydantic-settings for environment variable loading. Every setting has a
default suitable for local development; the storage backend defaults to the
in-memory adapter.

Invariants:
    - Settings are read once, at CacheSettings() construction
    - Secrets are never part of this configuration

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Document new variables here (prefix INSTORAGE_CACHE_)
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Supported storage backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class LogFormat(str, Enum):
    JSON = "json"
    TEXT = "text"


class CacheSettings(BaseSettings):
    """Cache configuration loaded from environment."""

    # Storage
    storage_backend: StorageBackend = Field(
        default=StorageBackend.MEMORY, description="Storage adapter to persist records to"
    )
    sqlite_path: str = Field(default="instorage_cache.db", description="SQLite database file")
    sqlite_table: str = Field(default="cache_entries", description="SQLite table for entries")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout")
    sqlite_wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")

    # Normalization
    root_key: str = Field(default="ROOT_QUERY", description="Key of the root record")
    id_fields: list[str] = Field(
        default=["id"], description="Identifying fields for the default identity rule"
    )
    add_typename: bool = Field(default=True, description="Store and return __typename")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_format: LogFormat = Field(default=LogFormat.TEXT, description="json or text")

    model_config = {"env_prefix": "INSTORAGE_CACHE_"}

    @field_validator("root_key")
    @classmethod
    def _check_root_key(cls, value: str) -> str:
        if not value or value.startswith("$"):
            raise ValueError("root_key must be non-empty and may not start with '$'")
        return value

    @field_validator("id_fields")
    @classmethod
    def _check_id_fields(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("id_fields must name at least one field")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {value}")
        return level

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Cache configuration loaded",
            extra={
                "storage_backend": self.storage_backend.value,
                "sqlite_path": self.sqlite_path
                if self.storage_backend == StorageBackend.SQLITE
                else None,
                "root_key": self.root_key,
                "id_fields": self.id_fields,
                "add_typename": self.add_typename,
            },
        )
