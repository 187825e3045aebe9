"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Picked For You", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    anilist_api_url: HttpUrl = Field(
        default="https://graphql.anilist.co", alias="ANILIST_API_URL"
    )
    anilist_token: str | None = Field(default=None, alias="ANILIST_TOKEN")
    anilist_username: str | None = Field(default=None, alias="ANILIST_USERNAME")

    sprout_api_url: HttpUrl = Field(
        default="https://anime.ameo.dev", alias="SPROUT_API_URL"
    )

    http_timeout_seconds: float = Field(
        default=20.0, alias="HTTP_TIMEOUT", gt=0, le=300
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./pickedforyou.db", alias="DATABASE_URL"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("anilist_token", "anilist_username", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank credentials as missing."""

        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return level

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
