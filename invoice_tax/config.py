from __future__ import annotations

import logging
import os
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic import ConfigDict, field_validator


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


class Settings(BaseModel):
    settings_path: str = Field(default_factory=lambda: os.getenv("SETTINGS_PATH", "data/settings.json"))
    settings_cache_ttl: float = Field(default_factory=lambda: _env_float("SETTINGS_CACHE_TTL", 60.0))
    artifact_root: str = Field(default_factory=lambda: os.getenv("ARTIFACT_ROOT", "artifacts"))
    default_currency: str = Field(default_factory=lambda: os.getenv("DEFAULT_CURRENCY", "PLN"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    build_version: str = Field(default_factory=lambda: os.getenv("BUILD_VERSION", "dev"))
    build_sha: str = Field(default_factory=lambda: os.getenv("BUILD_SHA", "local"))

    model_config = ConfigDict(frozen=True, validate_default=True)

    @field_validator("settings_cache_ttl")
    @classmethod
    def _validate_ttl(cls, value: float) -> float:
        return max(0.0, value)

    @field_validator("default_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        code = (value or "PLN").strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"DEFAULT_CURRENCY must be a 3-letter code, got {value!r}")
        return code

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        upper = (value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(upper), int):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {value!r}")
        return upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
