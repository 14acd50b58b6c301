"""Application configuration models."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Iterable, Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Mediarr", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    trakt_client_id: str | None = Field(default=None, alias="TRAKT_CLIENT_ID")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    trakt_api_url: HttpUrl = Field(
        default="https://api.trakt.tv", alias="TRAKT_API_URL"
    )
    tvmaze_api_url: HttpUrl = Field(
        default="http://api.tvmaze.com", alias="TVMAZE_API_URL"
    )

    provider_timeout_seconds: float = Field(
        default=15.0, alias="PROVIDER_TIMEOUT", gt=0
    )
    provider_retry_attempts: int = Field(
        default=5, alias="PROVIDER_RETRY_ATTEMPTS", ge=0, le=20
    )
    provider_backoff_min_seconds: float = Field(
        default=1.0, alias="PROVIDER_BACKOFF_MIN", ge=0
    )
    provider_backoff_max_seconds: float = Field(
        default=5.0, alias="PROVIDER_BACKOFF_MAX", ge=0
    )

    validation_ttl_hours: int = Field(
        default=168, alias="VALIDATION_TTL_HOURS", ge=1
    )

    ignore_expressions: list[str] = Field(
        default_factory=list, alias="IGNORE_EXPRESSIONS"
    )
    accept_expressions: list[str] = Field(
        default_factory=list, alias="ACCEPT_EXPRESSIONS"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./vault.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="production", alias="ENVIRONMENT"
    )

    @field_validator("ignore_expressions", "accept_expressions", mode="before")
    @classmethod
    def _parse_expressions(cls, value: object) -> list[str]:
        """Accept a single expression string or any iterable of them."""

        if value is None:
            return []
        if isinstance(value, str):
            raw_values: Iterable[object] = [value]
        elif isinstance(value, Iterable):
            raw_values = value
        else:
            raise TypeError("Filter expressions must be a string or a list of strings")
        return [str(entry).strip() for entry in raw_values if str(entry).strip()]

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "Settings":
        if self.provider_backoff_max_seconds < self.provider_backoff_min_seconds:
            raise ValueError("PROVIDER_BACKOFF_MAX must not be lower than PROVIDER_BACKOFF_MIN")
        return self

    @property
    def validation_ttl(self) -> timedelta:
        """Return how long a validated identifier stays trusted."""

        return timedelta(hours=self.validation_ttl_hours)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
