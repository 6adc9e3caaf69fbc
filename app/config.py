"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CACHE_KEY = "forYouCategories"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="AniMuse", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_api_url: HttpUrl = Field(
        default="https://api.openai.com/v1", alias="OPENAI_API_URL"
    )

    recommendation_count: int = Field(
        default=10, alias="RECOMMENDATION_COUNT", ge=1, le=50
    )
    watchlist_activity_limit: int = Field(
        default=5, alias="WATCHLIST_ACTIVITY_LIMIT", ge=0, le=50
    )
    refresh_interval_seconds: int = Field(
        default=43_200, alias="REFRESH_INTERVAL", ge=60
    )
    recent_fetch_seconds: int = Field(
        default=300, alias="RECENT_FETCH_WINDOW", ge=0
    )
    debounce_seconds: float = Field(
        default=0.5, alias="DEBOUNCE_SECONDS", ge=0, le=30
    )

    cache_backend: Literal["database", "memory"] = Field(
        default="database", alias="CACHE_BACKEND"
    )
    cache_key: str = Field(default=DEFAULT_CACHE_KEY, alias="CACHE_KEY")
    notification_history: int = Field(
        default=50, alias="NOTIFICATION_HISTORY", ge=1, le=1_000
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./animuse.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        """Treat blank API keys as missing."""

        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("cache_key")
    @classmethod
    def _validate_cache_key(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("CACHE_KEY must not be blank")
        return cleaned

    @model_validator(mode="after")
    def _check_refresh_windows(self) -> "Settings":
        """Ensure the very-recent guard stays inside the refresh interval."""

        if self.recent_fetch_seconds >= self.refresh_interval_seconds:
            raise ValueError(
                "RECENT_FETCH_WINDOW must be shorter than REFRESH_INTERVAL"
            )
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
