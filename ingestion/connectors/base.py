"""Connector abstraction, errors, and helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ingestion.models.domain import RawNewsItem
from ingestion.utils.logging import get_logger


class ConnectorError(Exception):
    """Base connector error."""


class TransientError(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup)."""


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx, unparseable payload)."""


class BaseConnector(ABC):
    """Abstract feed connector.

    ``fetch`` is total: upstream failures are logged and degrade to an empty
    list so one broken source never fails the whole pipeline.
    """

    source_name: str

    def __init__(self, *, max_attempts: int = 1) -> None:
        self.max_attempts = max(1, max_attempts)
        self.logger = get_logger(__name__)

    async def fetch(self, client: httpx.AsyncClient) -> List[RawNewsItem]:
        attempts = 0
        while True:
            attempts += 1
            try:
                raw = await self._fetch_raw(client)
                return self._normalize(raw)
            except TransientError as exc:
                if attempts < self.max_attempts:
                    self.logger.info(
                        "feed.fetch.retry",
                        extra={"source": self.source_name, "attempt": attempts, "reason": str(exc)},
                    )
                    continue
                self._log_failure(exc)
                return []
            except PermanentError as exc:
                self._log_failure(exc)
                return []
            except Exception as exc:  # parser or normalization bugs must not fail the other sources
                self.logger.warning(
                    "feed.fetch.error",
                    extra={"source": self.source_name, "reason": repr(exc)},
                    exc_info=True,
                )
                return []

    def _log_failure(self, exc: ConnectorError) -> None:
        self.logger.warning(
            "feed.fetch.failed",
            extra={"source": self.source_name, "error_type": type(exc).__name__, "reason": str(exc)},
        )

    @abstractmethod
    async def _fetch_raw(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        """Return a list of raw entry dicts from the upstream."""

    def _normalize(self, entries: List[Dict[str, Any]]) -> List[RawNewsItem]:
        items: List[RawNewsItem] = []
        for index, entry in enumerate(entries):
            item = self._normalize_item(index, entry)
            if item is not None:
                items.append(item)
        return items

    @abstractmethod
    def _normalize_item(self, index: int, entry: Dict[str, Any]) -> Optional[RawNewsItem]:
        """Build a RawNewsItem, or return None to drop the entry."""
