"""HTTP application settings (APP_ prefix)."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["development", "staging", "production", "test"]


class AppSettings(BaseSettings):
    """Settings consumed by ``create_app`` and the lifespan."""

    service_name: str = Field(default="notify-service", pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$")
    title: str = "Notification Delivery API"
    version: str = Field(default="0.1.0", pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9]+)?$")
    environment: Environment = "development"
    # Mount point of the notifications router; callbacks are registered with providers under it
    api_prefix: str = Field(default="/api/v1", pattern=r"^/.*$")
    debug: bool = False
    docs_url: str | None = "/docs"
    openapi_url: str | None = "/openapi.json"
    root_path: str = Field(default="", description="Prefix stripped by a reverse proxy")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
