"""Client-side news cache with stale-while-revalidate refresh.

``NewsCacheManager.fetch()`` always resolves: it serves whatever is cached
(even past its freshness window) and refreshes in the background when the
entry is stale or due, subject to a short client-side rate limit and a
process-wide single-flight guard.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, List, Optional, Set

import httpx
from pydantic import ValidationError

from ingestion.models.domain import NewsItem
from ingestion.services.sanitizer import sanitize_text

from .settings import ClientSettings, get_client_settings
from .storage import KeyValueStorage, StorageError, build_storage

CACHE_KEY = "news_cache_api_v1"
LAST_FETCH_KEY = "news_last_fetch_ts"
RATE_LIMIT_KEY = "news_rate_limit_ts"

Clock = Callable[[], int]

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class NewsClientError(Exception):
    """The news endpoint (and fallback) could not provide a usable list."""


class InFlightGuard:
    """Single-slot gate: at most one network fetch outstanding at a time."""

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def try_acquire(self) -> bool:
        if self._busy:
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False


# shared by every manager in the process unless one is given its own guard
_IN_FLIGHT = InFlightGuard()


def reset_in_flight() -> None:
    """Release the process-wide guard (used by tests)."""
    _IN_FLIGHT.release()


def _parse_items(payload: Any) -> List[NewsItem]:
    if not isinstance(payload, list):
        raise NewsClientError("invalid response format: expected a JSON array")
    try:
        return [NewsItem.model_validate(entry) for entry in payload]
    except ValidationError as exc:
        raise NewsClientError("invalid news item in response") from exc


class NewsCacheManager:
    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        storage: Optional[KeyValueStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Clock = _now_ms,
        guard: Optional[InFlightGuard] = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.storage = storage if storage is not None else build_storage(self.settings)
        self._http_client = http_client
        self._clock = clock
        self._guard = guard or _IN_FLIGHT
        self._background: Set[asyncio.Task] = set()

    # -- persisted state -------------------------------------------------

    def _load_entry(self) -> Optional[dict]:
        try:
            raw = self.storage.get_item(CACHE_KEY)
        except StorageError:
            return None
        if not raw:
            return None
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache.read.corrupt")
            return None
        if not isinstance(entry, dict):
            logger.warning("cache.read.corrupt")
            return None
        timestamp = entry.get("timestamp")
        # bool is an int subclass but never a valid epoch
        try:
            if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
                raise TypeError(type(timestamp).__name__)
            entry["timestamp"] = int(timestamp)
        except (TypeError, ValueError, OverflowError):
            logger.warning("cache.read.bad_timestamp", extra={"value": repr(timestamp)[:40]})
            return None
        return entry

    def _read_timestamp(self, key: str) -> int:
        try:
            return int(self.storage.get_item(key) or 0)
        except (StorageError, ValueError):
            return 0

    def read(self) -> Optional[List[NewsItem]]:
        """Cached items regardless of age, re-sanitized for display; None on miss.

        An entry with zero items counts as a miss.
        """
        entry = self._load_entry()
        if entry is None:
            return None
        raw_items = entry.get("items") or []
        if not raw_items:
            return None
        try:
            items = _parse_items(raw_items)
        except NewsClientError:
            logger.warning("cache.read.invalid_items")
            return None

        age_min = round((self._clock() - entry["timestamp"]) / 60_000)
        logger.debug("cache.read", extra={"age_minutes": age_min, "items": len(items)})
        return [
            item.model_copy(update={"title": sanitize_text(item.title), "summary": sanitize_text(item.summary)})
            for item in items
        ]

    def is_stale(self) -> bool:
        entry = self._load_entry()
        if entry is None:
            return True
        return self._clock() - entry["timestamp"] > self.settings.cache_ttl_seconds * 1000

    def should_background_refresh(self) -> bool:
        since_write = self._clock() - self._read_timestamp(LAST_FETCH_KEY)
        return since_write > self.settings.background_refresh_seconds * 1000

    def _check_rate_limit(self) -> bool:
        """True when the client may hit the network now; records the attempt."""
        now = self._clock()
        elapsed = now - self._read_timestamp(RATE_LIMIT_KEY)
        if elapsed < self.settings.rate_limit_seconds * 1000:
            logger.debug("cache.rate_limited", extra={"wait_seconds": round((self.settings.rate_limit_seconds * 1000 - elapsed) / 1000)})
            return False
        try:
            self.storage.set_item(RATE_LIMIT_KEY, str(now))
        except StorageError as exc:
            logger.warning("cache.rate_limit.write_failed", extra={"reason": str(exc)})
        return True

    def write(self, items: List[NewsItem]) -> None:
        if not items:
            logger.warning("cache.write.skipped_empty")
            return
        now = self._clock()
        payload = json.dumps({"timestamp": now, "items": [item.to_wire() for item in items]}, ensure_ascii=False)
        try:
            self.storage.set_item(CACHE_KEY, payload)
            self.storage.set_item(LAST_FETCH_KEY, str(now))
        except StorageError as exc:
            logger.warning("cache.write.failed", extra={"reason": str(exc)})
            return
        logger.info("cache.write", extra={"items": len(items)})

    # -- network ---------------------------------------------------------

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> Any:
        try:
            resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise NewsClientError(f"request to {url} failed: {exc}") from exc
        if not resp.is_success:
            raise NewsClientError(f"news API error: {resp.status_code} {resp.reason_phrase}")
        try:
            return resp.json()
        except ValueError as exc:
            raise NewsClientError("response is not JSON") from exc

    async def _fetch_with(self, client: httpx.AsyncClient) -> List[NewsItem]:
        try:
            return _parse_items(await self._get_json(client, self.settings.api_url))
        except NewsClientError as exc:
            if not self.settings.fallback_url:
                raise
            logger.warning("news.api.failed_trying_fallback", extra={"reason": str(exc)})
            try:
                fallback = _parse_items(await self._get_json(client, self.settings.fallback_url))
            except NewsClientError as fallback_exc:
                logger.warning("news.fallback.failed", extra={"reason": str(fallback_exc)})
                raise exc
            if not fallback:
                raise exc
            return fallback

    async def fetch_from_api(self) -> List[NewsItem]:
        if self._http_client is not None:
            return await self._fetch_with(self._http_client)
        async with httpx.AsyncClient(timeout=float(self.settings.request_timeout_seconds)) as client:
            return await self._fetch_with(client)

    async def _background_refresh(self) -> None:
        try:
            items = await self.fetch_from_api()
            if items:
                self.write(items)
                logger.info("news.background_refresh.done", extra={"items": len(items)})
        except Exception as exc:
            logger.warning("news.background_refresh.failed", extra={"reason": str(exc)})
        finally:
            self._guard.release()

    def _start_background_refresh(self) -> None:
        task = asyncio.create_task(self._background_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        """Await outstanding background refreshes (shutdown and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def fetch(self) -> List[NewsItem]:
        cached = self.read()

        if cached:
            refresh_due = self.is_stale() or self.should_background_refresh()
            if refresh_due and self._check_rate_limit() and self._guard.try_acquire():
                self._start_background_refresh()
            return cached

        if not self._check_rate_limit() or not self._guard.try_acquire():
            logger.debug("news.fetch.deferred")
            return cached or []

        try:
            items = await self.fetch_from_api()
            if items:
                self.write(items)
            return items
        except Exception as exc:
            logger.error("news.fetch.failed", extra={"reason": str(exc)})
            return cached or []
        finally:
            self._guard.release()


async def run_periodic_refresh(
    manager: NewsCacheManager,
    *,
    interval_seconds: Optional[float] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Silently re-pull through ``manager.fetch()`` until ``stop_event`` is set."""
    interval = float(interval_seconds or manager.settings.periodic_refresh_seconds)
    stop = stop_event or asyncio.Event()
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            pass
        try:
            await manager.fetch()
        except Exception:
            logger.warning("news.periodic_refresh.failed", exc_info=True)
