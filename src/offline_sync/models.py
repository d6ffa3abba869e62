"""Pydantic models for sync configuration validation.

The YAML config is parsed into these models at startup.  Invalid configs
fail fast with clear error messages before any I/O happens.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

API_URL_ENV = "OFFLINE_SYNC_API_URL"


class RetrySettings(BaseModel):
    max_attempts: int = Field(default=1, ge=1)
    backoff_seconds: float = 2.0


class ApiSettings(BaseModel):
    base_url: str = "http://localhost:3001/api"
    timeout: float = 10.0
    auth_token_env: str | None = None
    headers: dict[str, str] = {}


class StorageConfig(BaseModel):
    backend: str = "sql_database"
    config_file: str | None = None
    inline_config: dict[str, Any] | None = None

    def resolve(self) -> dict[str, Any]:
        """Merge config_file YAML with inline_config.  Inline wins."""
        merged: dict[str, Any] = {}
        if self.config_file is not None:
            merged.update(yaml.safe_load(Path(self.config_file).read_text()) or {})
        if self.inline_config is not None:
            merged.update(self.inline_config)
        return merged


class MonitorSettings(BaseModel):
    interval_seconds: float = Field(default=30.0, gt=0)
    probe_timeout_seconds: float = Field(default=3.0, gt=0)
    auto_sync: bool = True


class SyncSettings(BaseModel):
    log_level: str = "INFO"
    request_timeout_seconds: float = Field(default=5.0, gt=0)
    reply_timeout_seconds: float = Field(default=5.0, gt=0)
    success_reset_seconds: float = 3.0
    error_reset_seconds: float = 5.0
    retry: RetrySettings = RetrySettings()


class SyncConfig(BaseModel):
    """Root model — represents the entire sync YAML file."""

    version: str = "1.0"
    api: ApiSettings = ApiSettings()
    storage: StorageConfig = StorageConfig(
        inline_config={"connection_string": "sqlite:///offline_todos.db"}
    )
    monitor: MonitorSettings = MonitorSettings()
    settings: SyncSettings = SyncSettings()


def load_config(path: str | Path | None = None) -> SyncConfig:
    """Read and validate the YAML config at *path* (defaults when ``None``).

    ``OFFLINE_SYNC_API_URL`` in the environment overrides ``api.base_url``.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        raw = yaml.safe_load(Path(path).read_text()) or {}
    config = SyncConfig.model_validate(raw)

    env_url = os.environ.get(API_URL_ENV)
    if env_url:
        config.api.base_url = env_url
    return config
