"""Settings for the news cache client."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, PositiveFloat, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Environment-driven configuration for the consumer-side cache."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    api_url: str = Field("http://localhost:8000/api/news", alias="NEWS_API_URL", description="News endpoint URL")
    fallback_url: Optional[str] = Field(None, alias="NEWS_FALLBACK_URL", description="Static JSON used when the API fails")
    request_timeout_seconds: PositiveFloat = Field(10.0, alias="NEWS_CLIENT_TIMEOUT_SECONDS", description="HTTP timeout")
    cache_ttl_seconds: PositiveInt = Field(6 * 60 * 60, alias="NEWS_CACHE_TTL_SECONDS", description="Freshness window")
    background_refresh_seconds: PositiveInt = Field(
        2 * 60 * 60,
        alias="NEWS_BACKGROUND_REFRESH_SECONDS",
        description="Minimum time since the last successful write before a background refresh",
    )
    rate_limit_seconds: PositiveInt = Field(30, alias="NEWS_CLIENT_RATE_LIMIT_SECONDS", description="Minimum gap between fetches")
    periodic_refresh_seconds: PositiveInt = Field(5 * 60, alias="NEWS_PERIODIC_REFRESH_SECONDS", description="Silent re-pull interval")
    cache_backend: Literal["memory", "file", "redis"] = Field("file", alias="NEWS_CACHE_BACKEND", description="Storage backend")
    cache_path: str = Field("./var/news_cache.json", alias="NEWS_CACHE_PATH", description="File backend location")
    cache_redis_url: str = Field("redis://localhost:6379/1", alias="NEWS_CACHE_REDIS_URL", description="Redis backend DSN")

    @field_validator("api_url")
    @classmethod
    def _non_empty_url(cls, v: str) -> str:
        s = v.strip()
        if not s.startswith(("http://", "https://")):
            raise ValueError("NEWS_API_URL must be an absolute http(s) URL")
        return s

    @field_validator("fallback_url")
    @classmethod
    def _blank_fallback_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


@lru_cache()
def get_client_settings() -> ClientSettings:
    try:
        return ClientSettings()
    except ValidationError as exc:
        raise RuntimeError(f"invalid news client configuration: {exc}") from exc


def reset_client_settings_cache() -> None:
    get_client_settings.cache_clear()  # type: ignore[attr-defined]
