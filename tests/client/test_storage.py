from __future__ import annotations

from typing import Dict, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from client.settings import ClientSettings
from client.storage import (
    InMemoryStorage,
    JsonFileStorage,
    RedisStorage,
    StorageError,
    build_storage,
)


class FakeRedis:
    def __init__(self) -> None:
        self.data: Dict[str, bytes] = {}

    def get(self, name: str) -> Optional[bytes]:
        return self.data.get(name)

    def set(self, name: str, value: str) -> bool:
        self.data[name] = value.encode("utf-8")
        return True

    def delete(self, name: str) -> int:
        return 1 if self.data.pop(name, None) is not None else 0


class DownRedis:
    def get(self, name: str):
        raise RedisConnectionError("down")

    def set(self, name: str, value: str):
        raise RedisConnectionError("down")

    def delete(self, name: str):
        raise RedisConnectionError("down")


def test_json_file_storage_persists_across_instances(tmp_path):
    path = tmp_path / "cache" / "news.json"
    JsonFileStorage(path).set_item("news_cache_api_v1", '{"timestamp": 1, "items": []}')
    JsonFileStorage(path).set_item("news_last_fetch_ts", "1")

    reopened = JsonFileStorage(path)
    assert reopened.get_item("news_cache_api_v1") == '{"timestamp": 1, "items": []}'
    assert reopened.get_item("news_last_fetch_ts") == "1"

    reopened.remove_item("news_last_fetch_ts")
    assert JsonFileStorage(path).get_item("news_last_fetch_ts") is None


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "news.json"
    path.write_text("{broken", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.get_item("news_cache_api_v1") is None

    storage.set_item("k", "v")
    assert storage.get_item("k") == "v"


def test_unwritable_location_raises_storage_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonFileStorage(blocker / "news.json").set_item("k", "v")


def test_redis_storage_prefixes_and_decodes():
    fake = FakeRedis()
    storage = RedisStorage(fake)

    storage.set_item("news_rate_limit_ts", "42")

    assert fake.data == {"newsclient:news_rate_limit_ts": b"42"}
    assert storage.get_item("news_rate_limit_ts") == "42"
    storage.remove_item("news_rate_limit_ts")
    assert storage.get_item("news_rate_limit_ts") is None


def test_redis_outage_reads_as_miss_and_fails_writes():
    storage = RedisStorage(DownRedis())

    assert storage.get_item("news_cache_api_v1") is None
    storage.remove_item("news_cache_api_v1")
    with pytest.raises(StorageError):
        storage.set_item("news_cache_api_v1", "{}")


def test_build_storage_selects_backend(tmp_path):
    assert isinstance(build_storage(ClientSettings(cache_backend="memory")), InMemoryStorage)

    file_storage = build_storage(ClientSettings(cache_backend="file", cache_path=str(tmp_path / "c.json")))
    assert isinstance(file_storage, JsonFileStorage)
    assert file_storage.path == tmp_path / "c.json"
