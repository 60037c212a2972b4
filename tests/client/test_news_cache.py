from __future__ import annotations

import asyncio
import json

import pytest

from client.news_cache import (
    CACHE_KEY,
    LAST_FETCH_KEY,
    RATE_LIMIT_KEY,
    InFlightGuard,
    NewsCacheManager,
    reset_in_flight,
    run_periodic_refresh,
)
from client.settings import ClientSettings
from client.storage import InMemoryStorage
from ingestion.models.domain import NewsItem

API_URL = "https://news.example.com/api/news"
FALLBACK_URL = "https://static.example.com/news.json"
HOUR_MS = 60 * 60 * 1000


class FakeClock:
    def __init__(self, now: int = 1_716_735_600_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _wire(title: str = "Verstappen wins Monaco Grand Prix") -> dict:
    return {
        "id": "synthesized-0-1",
        "title": title,
        "summary": "Red Bull driver controls the race from pole.",
        "url": "https://www.autosport.com/f1/news/monaco",
        "sourceName": "Autosport",
        "image": "/favicon.svg",
        "publishedAt": "26/05/2024",
        "sourceUrl": "https://www.autosport.com/f1/news/monaco",
    }


@pytest.fixture(autouse=True)
def _release_guard():
    reset_in_flight()
    yield
    reset_in_flight()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


def _manager(storage, clock, **overrides) -> NewsCacheManager:
    settings = ClientSettings(api_url=API_URL, cache_backend="memory", **overrides)
    return NewsCacheManager(settings, storage=storage, clock=clock, guard=InFlightGuard())


def test_read_misses_on_absent_empty_or_corrupt_entry(storage, clock):
    manager = _manager(storage, clock)
    assert manager.read() is None

    storage.set_item(CACHE_KEY, json.dumps({"timestamp": clock.now, "items": []}))
    assert manager.read() is None

    storage.set_item(CACHE_KEY, "{not json")
    assert manager.read() is None

    storage.set_item(CACHE_KEY, json.dumps({"timestamp": clock.now, "items": [{"title": "missing fields"}]}))
    assert manager.read() is None

    storage.set_item(CACHE_KEY, json.dumps([_wire()]))
    assert manager.read() is None


@pytest.mark.parametrize("timestamp", ["garbage", [1, 2], None, True, "Infinity"])
def test_read_misses_on_bad_timestamp(storage, clock, timestamp):
    raw = json.dumps({"timestamp": timestamp, "items": [_wire()]})
    if timestamp == "Infinity":
        raw = raw.replace('"Infinity"', "Infinity")
    storage.set_item(CACHE_KEY, raw)
    manager = _manager(storage, clock)

    assert manager.read() is None
    assert manager.is_stale()


@pytest.mark.asyncio
async def test_fetch_recovers_from_bad_timestamp(httpx_mock, storage, clock):
    storage.set_item(CACHE_KEY, json.dumps({"timestamp": "garbage", "items": [_wire(title="Old story")]}))
    httpx_mock.add_response(method="GET", url=API_URL, json=[_wire(title="New story")])
    manager = _manager(storage, clock)

    items = await manager.fetch()

    assert [i.title for i in items] == ["New story"]
    assert json.loads(storage.get_item(CACHE_KEY))["timestamp"] == clock.now


def test_stale_entry_is_still_served(storage, clock):
    manager = _manager(storage, clock)
    manager.write([NewsItem.model_validate(_wire())])

    clock.now += 7 * HOUR_MS

    assert manager.is_stale()
    assert [i.title for i in manager.read()] == ["Verstappen wins Monaco Grand Prix"]


def test_background_refresh_due_tracks_last_write(storage, clock):
    manager = _manager(storage, clock)
    manager.write([NewsItem.model_validate(_wire())])

    clock.now += HOUR_MS
    assert not manager.should_background_refresh()
    clock.now += HOUR_MS + 1
    assert manager.should_background_refresh()
    assert not manager.is_stale()


def test_write_never_persists_empty_list(storage, clock):
    manager = _manager(storage, clock)

    manager.write([])

    assert storage.get_item(CACHE_KEY) is None
    assert storage.get_item(LAST_FETCH_KEY) is None


def test_read_resanitizes_cached_text(storage, clock):
    entry = _wire(title="<b>Bold</b> &amp; <script>alert(1)</script>news")
    storage.set_item(CACHE_KEY, json.dumps({"timestamp": clock.now, "items": [entry]}))

    [item] = _manager(storage, clock).read()

    assert item.title == "Bold & alert(1)news"


@pytest.mark.asyncio
async def test_first_fetch_hits_api_and_writes_cache(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, json=[_wire()])
    manager = _manager(storage, clock)

    items = await manager.fetch()

    assert [i.source_name for i in items] == ["Autosport"]
    entry = json.loads(storage.get_item(CACHE_KEY))
    assert entry["timestamp"] == clock.now
    assert entry["items"][0]["sourceName"] == "Autosport"
    assert storage.get_item(LAST_FETCH_KEY) == str(clock.now)
    assert storage.get_item(RATE_LIMIT_KEY) == str(clock.now)


@pytest.mark.asyncio
async def test_server_error_resolves_to_empty_list(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, status_code=500, json={"error": "Failed to fetch news"})

    assert await _manager(storage, clock).fetch() == []
    assert storage.get_item(CACHE_KEY) is None


@pytest.mark.asyncio
async def test_non_array_payload_is_rejected(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, json={"items": [_wire()]})

    assert await _manager(storage, clock).fetch() == []


@pytest.mark.asyncio
async def test_empty_api_result_is_not_cached(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, json=[])

    assert await _manager(storage, clock).fetch() == []
    assert storage.get_item(CACHE_KEY) is None


@pytest.mark.asyncio
async def test_fallback_url_used_when_api_fails(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, status_code=504, json={"error": "Request timeout"})
    httpx_mock.add_response(method="GET", url=FALLBACK_URL, json=[_wire(title="Static story")])

    items = await _manager(storage, clock, fallback_url=FALLBACK_URL).fetch()

    assert [i.title for i in items] == ["Static story"]
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_fresh_cache_makes_no_request(httpx_mock, storage, clock):
    manager = _manager(storage, clock)
    manager.write([NewsItem.model_validate(_wire())])

    items = await manager.fetch()
    await manager.wait_for_background()

    assert len(items) == 1
    assert httpx_mock.get_requests() == []


@pytest.mark.asyncio
async def test_stale_cache_returns_immediately_and_refreshes_in_background(httpx_mock, storage, clock):
    manager = _manager(storage, clock)
    manager.write([NewsItem.model_validate(_wire(title="Old story"))])
    clock.now += 7 * HOUR_MS
    httpx_mock.add_response(method="GET", url=API_URL, json=[_wire(title="New story")])

    served = await manager.fetch()
    assert [i.title for i in served] == ["Old story"]

    await manager.wait_for_background()

    assert [i.title for i in manager.read()] == ["New story"]
    assert not manager.is_stale()


@pytest.mark.asyncio
async def test_background_failure_keeps_cache_and_releases_guard(httpx_mock, storage, clock):
    guard = InFlightGuard()
    settings = ClientSettings(api_url=API_URL, cache_backend="memory")
    manager = NewsCacheManager(settings, storage=storage, clock=clock, guard=guard)
    manager.write([NewsItem.model_validate(_wire(title="Old story"))])
    clock.now += 7 * HOUR_MS
    httpx_mock.add_response(method="GET", url=API_URL, status_code=500)

    served = await manager.fetch()
    await manager.wait_for_background()

    assert [i.title for i in served] == ["Old story"]
    assert [i.title for i in manager.read()] == ["Old story"]
    assert not guard.busy


@pytest.mark.asyncio
async def test_rate_limit_window_suppresses_repeat_requests(httpx_mock, storage, clock):
    httpx_mock.add_response(method="GET", url=API_URL, status_code=500)
    manager = _manager(storage, clock)

    assert await manager.fetch() == []
    clock.now += 10_000
    assert await manager.fetch() == []

    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_in_flight_fetch_blocks_a_second_request(httpx_mock, storage, clock):
    guard = InFlightGuard()
    assert guard.try_acquire()
    settings = ClientSettings(api_url=API_URL, cache_backend="memory")
    manager = NewsCacheManager(settings, storage=storage, clock=clock, guard=guard)

    assert await manager.fetch() == []
    assert httpx_mock.get_requests() == []


class _CountingManager:
    def __init__(self, stop: asyncio.Event) -> None:
        self.calls = 0
        self._stop = stop

    async def fetch(self):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("transient")
        self._stop.set()
        return []


@pytest.mark.asyncio
async def test_periodic_refresh_swallows_errors_and_stops():
    stop = asyncio.Event()
    manager = _CountingManager(stop)

    await asyncio.wait_for(run_periodic_refresh(manager, interval_seconds=0.01, stop_event=stop), timeout=2)

    assert manager.calls == 2
