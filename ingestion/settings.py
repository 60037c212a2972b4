"""Configuration models for the news aggregation service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Optional, Set
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedSource(BaseModel):
    """One upstream RSS feed and the base URL used to resolve relative links."""

    name: str = Field(..., description="Human-readable source name shown in attribution.")
    rss_url: str = Field(..., description="Absolute RSS feed URL.")
    base_url: str = Field(..., description="Site root for resolving relative image links.")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("source name must not be blank")
        return name

    @field_validator("rss_url", "base_url")
    @classmethod
    def _absolute_http_url(cls, value: str) -> str:
        url = value.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return url


DEFAULT_SOURCES: List[dict[str, str]] = [
    {
        "name": "The Race",
        "rss_url": "https://www.the-race.com/feed/",
        "base_url": "https://www.the-race.com",
    },
    {
        "name": "Autosport",
        "rss_url": "https://www.autosport.com/rss/f1/news/",
        "base_url": "https://www.autosport.com",
    },
    {
        "name": "Motorsport.com",
        "rss_url": "https://www.motorsport.com/rss/f1/news/",
        "base_url": "https://www.motorsport.com",
    },
]

DEFAULT_ALLOWED_ORIGINS: List[str] = [
    "https://project-anthology.vercel.app",
    "https://anthology-f1.vercel.app",
]


def _parse_json_list(value: Any, env_name: str) -> List[Any]:
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{env_name} must be a JSON array") from exc
        value = parsed
    if not isinstance(value, list):
        raise ValueError(f"{env_name} must be a list")
    return value


class Settings(BaseSettings):
    """Server-side settings: feeds, admission control, logging."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    news_sources: List[FeedSource] = Field(
        default_factory=lambda: [FeedSource(**s) for s in DEFAULT_SOURCES],
        alias="NEWS_SOURCES",
        description="JSON array of {name, rss_url, base_url}.",
    )
    user_agent: str = Field(
        "Project Anthology News Aggregator",
        alias="NEWS_USER_AGENT",
        description="User-Agent sent to upstream feeds.",
    )
    feed_timeout_seconds: PositiveFloat = Field(5.0, alias="FEED_TIMEOUT_SECONDS", description="Per-source HTTP timeout.")
    feed_max_attempts: PositiveInt = Field(1, alias="FEED_MAX_ATTEMPTS", description="Attempts per source on transient errors.")
    pipeline_timeout_seconds: PositiveFloat = Field(
        10.0,
        alias="PIPELINE_TIMEOUT_SECONDS",
        description="Wall-clock budget for fetch+filter+cluster+synthesize.",
    )
    rate_limit_max_requests: PositiveInt = Field(30, alias="RATE_LIMIT_MAX_REQUESTS", description="Requests per window per IP.")
    rate_limit_window_seconds: PositiveInt = Field(60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Fixed window length.")
    rate_limit_max_entries: PositiveInt = Field(
        1000,
        alias="RATE_LIMIT_MAX_ENTRIES",
        description="Table size above which expired windows are pruned.",
    )
    rate_limit_redis_url: Optional[str] = Field(
        None,
        alias="RATE_LIMIT_REDIS_URL",
        description="Use a shared Redis counter instead of the in-process table.",
    )
    allowed_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS),
        alias="ALLOWED_ORIGINS",
        description="Production origin prefixes allowed to read responses cross-origin.",
    )
    cache_control: str = Field(
        "s-maxage=3600, stale-while-revalidate=86400",
        alias="NEWS_CACHE_CONTROL",
        description="Cache-Control header on successful responses.",
    )
    placeholder_image: str = Field("/favicon.svg", alias="PLACEHOLDER_IMAGE", description="Local placeholder asset.")
    app_env: str = Field("development", alias="APP_ENV", description="Environment name reported by /api/health.")
    app_version: str = Field("unknown", alias="APP_VERSION", description="Build identifier reported by /api/health.")
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="Log level.")
    log_json: bool = Field(False, alias="LOG_JSON", description="Emit logs as JSON lines.")

    @field_validator("news_sources", mode="before")
    @classmethod
    def _parse_news_sources(cls, value: Any) -> List[Any]:
        if value in (None, "", []):
            return []
        return _parse_json_list(value, "NEWS_SOURCES")

    @field_validator("news_sources")
    @classmethod
    def _validate_unique_sources(cls, value: List[FeedSource]) -> List[FeedSource]:
        seen: Set[str] = set()
        for source in value:
            if source.name in seen:
                raise ValueError(f"duplicate news source: {source.name}")
            seen.add(source.name)
        return value

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_allowed_origins(cls, value: Any) -> List[Any]:
        if value in (None, ""):
            return []
        return [str(v).strip() for v in _parse_json_list(value, "ALLOWED_ORIGINS") if str(v).strip()]

    @field_validator("rate_limit_redis_url")
    @classmethod
    def _validate_redis_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if "://" not in value:
            raise ValueError("RATE_LIMIT_REDIS_URL must be a redis:// DSN")
        return value.strip()


@lru_cache()
def get_settings() -> Settings:
    """Return the Settings instance built from the environment."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"invalid environment configuration: {exc}") from exc


def reset_settings_cache() -> None:
    """Clear the Settings cache (used by tests)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
