"""Key-value storage backends for the client cache (local-storage equivalent)."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

import redis
from redis.exceptions import RedisError

from .settings import ClientSettings

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...  # noqa: D401
    def set_item(self, key: str, value: str) -> None: ...  # noqa: D401
    def remove_item(self, key: str) -> None: ...  # noqa: D401


class StorageError(Exception):
    """A write to the backing store failed."""


class InMemoryStorage:
    """Dict-backed storage for tests/local runs."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """All keys in one JSON object on disk, rewritten atomically.

    An unreadable or corrupt file reads as empty.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("storage.file.read_failed", extra={"path": str(self.path), "reason": str(exc)})
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("storage.file.corrupt", extra={"path": str(self.path)})
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".news-cache-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class RedisStorage:
    """Redis-backed storage; connection errors read as misses."""

    def __init__(self, client: "redis.Redis", *, prefix: str = "newsclient") -> None:
        self.client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str = "redis://localhost:6379/1") -> "RedisStorage":
        return cls(redis.Redis.from_url(redis_url, decode_responses=True))

    def _format(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get_item(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(self._format(key))
        except RedisError:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return value

    def set_item(self, key: str, value: str) -> None:
        try:
            self.client.set(self._format(key), value)
        except RedisError as exc:
            raise StorageError(f"redis write failed: {exc}") from exc

    def remove_item(self, key: str) -> None:
        try:
            self.client.delete(self._format(key))
        except RedisError:
            return


def build_storage(settings: ClientSettings) -> KeyValueStorage:
    if settings.cache_backend == "memory":
        return InMemoryStorage()
    if settings.cache_backend == "redis":
        return RedisStorage.from_url(settings.cache_redis_url)
    return JsonFileStorage(settings.cache_path)
