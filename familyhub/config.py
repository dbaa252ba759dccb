from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    # Core
    app_name: str = Field(default="familyhub-server")
    environment: str = Field(default="dev")  # dev|staging|prod
    log_json: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    # Data
    database_url: str | None = Field(default=None)
    redis_url: str | None = Field(default=None)

    # API
    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])
    generation_rate_limit: str = Field(default="30/minute")

    # Shopping lists
    regeneration_lock_ttl_seconds: int = Field(default=120, ge=5, le=3600)

    # Observability
    sentry_dsn: str | None = Field(default=None)
    sentry_traces_sample_rate: float = Field(default=0.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _csv_to_list(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
