"""
Service configuration.
Read once from the environment, validated, then passed explicitly to the sagas.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

import constants as C


class Settings(BaseModel):
    registry_database_url: str = Field(..., min_length=1)
    mapping_database_url: str = Field(..., min_length=1)
    vault_url: str = Field(..., min_length=1)
    vault_token: str = Field(..., min_length=1)
    ingestion_url: str = Field(..., min_length=1)
    ingestion_token: str = Field(..., min_length=1)
    backfill_days: int = Field(C.DEFAULT_BACKFILL_DAYS, gt=0, le=365)
    http_connect_timeout: float = Field(5.0, gt=0)
    http_read_timeout: float = Field(30.0, gt=0)
    http_retry_max: int = Field(3, ge=1, le=10)
    http_backoff_base: float = Field(1.0, ge=0)
    statement_timeout_ms: int = Field(15000, gt=0)
    saga_timeout_seconds: float = Field(120.0, gt=0)
    jwt_secret: str = "insecure-placeholder-change-in-env"
    log_level: str = "INFO"

    @field_validator("vault_url", "ingestion_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"Invalid log level: {v}")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        keys = {
            "registry_database_url": C.REGISTRY_DATABASE_URL,
            "mapping_database_url": C.MAPPING_DATABASE_URL,
            "vault_url": C.VAULT_URL,
            "vault_token": C.VAULT_TOKEN,
            "ingestion_url": C.INGESTION_URL,
            "ingestion_token": C.INGESTION_TOKEN,
            "backfill_days": C.BACKFILL_DAYS,
            "http_connect_timeout": C.HTTP_CONNECT_TIMEOUT,
            "http_read_timeout": C.HTTP_READ_TIMEOUT,
            "http_retry_max": C.HTTP_RETRY_MAX,
            "http_backoff_base": C.HTTP_BACKOFF_BASE,
            "statement_timeout_ms": C.STATEMENT_TIMEOUT_MS,
            "saga_timeout_seconds": C.SAGA_TIMEOUT_SECONDS,
            "jwt_secret": C.JWT_SECRET,
            "log_level": C.LOG_LEVEL,
        }
        # Unset keys fall back to field defaults; required ones fail validation.
        values = {field: env[key] for field, key in keys.items() if env.get(key) not in (None, "")}
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
