"""Consumer-side news cache."""

from .news_cache import NewsCacheManager, NewsClientError, run_periodic_refresh  # noqa: F401
from .settings import ClientSettings, get_client_settings, reset_client_settings_cache  # noqa: F401

__all__ = [
    "ClientSettings",
    "NewsCacheManager",
    "NewsClientError",
    "get_client_settings",
    "reset_client_settings_cache",
    "run_periodic_refresh",
]
