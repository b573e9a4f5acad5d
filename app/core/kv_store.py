import time
from collections.abc import Iterator
from fnmatch import fnmatchcase
from functools import lru_cache
from typing import Optional, Union

import redis

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class InMemoryStore:
    """Process-local stand-in for the handful of Redis commands the app uses."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._expires_at: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= time.time():
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    def get(self, key: str) -> Optional[str]:
        self._purge(key)
        return self._values.get(key)

    def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._values[key] = str(value)
        if ex:
            self._expires_at[key] = time.time() + ex
        else:
            self._expires_at.pop(key, None)
        return True

    def incr(self, key: str) -> int:
        self._purge(key)
        current = int(self._values.get(key, "0")) + 1
        self._values[key] = str(current)
        return current

    def expire(self, key: str, seconds: int) -> bool:
        if key not in self._values:
            return False
        self._expires_at[key] = time.time() + seconds
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._values.pop(key, None) is not None:
                removed += 1
            self._expires_at.pop(key, None)
        return removed

    def scan_iter(self, match: Optional[str] = None) -> Iterator[str]:
        for key in list(self._values):
            self._purge(key)
            if key in self._values and (match is None or fnmatchcase(key, match)):
                yield key


KeyValueStore = Union[redis.Redis, InMemoryStore]


def connect_store(redis_url: str) -> KeyValueStore:
    try:
        client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=1)
        client.ping()
        return client
    except (redis.RedisError, ValueError) as exc:
        logger.warning("kv_store.fallback_to_memory", extra={"reason": str(exc)})
        return InMemoryStore()


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    return connect_store(get_settings().redis_url)
