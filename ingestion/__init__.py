"""Feed ingestion package bootstrap."""

from .settings import FeedSource, Settings, get_settings, reset_settings_cache  # noqa: F401

__all__ = [
    "FeedSource",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]
