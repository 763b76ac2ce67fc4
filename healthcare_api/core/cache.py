"""Cache-aside layer.

Reads check the cache first and fall back to storage on a miss; writes
invalidate every key that could now be stale rather than updating entries
in place. Values are stored as JSON strings so a cached value never shares
state with objects handed out to callers.
"""
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple, TypeVar
import logging
import threading
import time

from pydantic import TypeAdapter
import redis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TTLs in seconds
STATIC_TTL = 30 * 60      # user listings, single users
DEFAULT_TTL = 15 * 60     # single appointments/reminders, full listings
SHORT_TTL = 5 * 60        # today, upcoming, unread, conversations


class CacheBackend:
    """String key/value store with per-entry TTL."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> None:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def incr(self, key: str, ttl: int) -> int:
        """Increment a counter, starting a new TTL window when it is created."""
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    """In-process LRU store guarded by a single lock."""

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._data)

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def _store(self, key: str, value: str, expires_at: float) -> None:
        self._data[key] = (value, expires_at)
        self._data.move_to_end(key)
        while len(self._data) > self.max_entries:
            self._data.popitem(last=False)

    def get(self, key):
        with self._lock:
            return self._live(key)

    def set(self, key, value, ttl):
        with self._lock:
            self._store(key, value, self._clock() + ttl)

    def delete(self, *keys):
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def delete_prefix(self, prefix):
        with self._lock:
            doomed = [key for key in self._data if key.startswith(prefix)]
            for key in doomed:
                del self._data[key]
            return len(doomed)

    def incr(self, key, ttl):
        with self._lock:
            current = self._live(key)
            if current is None:
                self._store(key, "1", self._clock() + ttl)
                return 1
            count = int(current) + 1
            # Keep the window that the first increment opened
            self._store(key, str(count), self._data[key][1])
            return count

    def clear(self):
        with self._lock:
            self._data.clear()


class RedisCacheBackend(CacheBackend):
    """Redis store; every key lives under a namespace prefix."""

    def __init__(self, client, namespace: str = "healthcare:"):
        self.client = client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key):
        try:
            value = self.client.get(self._key(key))
        except RedisError as exc:
            logger.warning(f"Cache read failed for {key}: {exc}")
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key, value, ttl):
        try:
            self.client.setex(self._key(key), ttl, value)
        except RedisError as exc:
            logger.warning(f"Cache write failed for {key}: {exc}")

    def delete(self, *keys):
        if keys:
            self.client.delete(*[self._key(key) for key in keys])

    def delete_prefix(self, prefix):
        doomed = list(self.client.scan_iter(match=f"{self._key(prefix)}*"))
        if doomed:
            self.client.delete(*doomed)
        return len(doomed)

    def incr(self, key, ttl):
        namespaced = self._key(key)
        # The key is created with its TTL in the same transaction as the increment
        pipe = self.client.pipeline(transaction=True)
        pipe.set(namespaced, 0, ex=ttl, nx=True)
        pipe.incr(namespaced)
        _, count = pipe.execute()
        return int(count)

    def clear(self):
        self.delete_prefix("")


class CacheService:
    """Typed get/set/invalidate facade over a CacheBackend."""

    def __init__(self, backend: CacheBackend):
        self.backend = backend

    def get(self, key: str, type_: Any) -> Optional[Any]:
        raw = self.backend.get(key)
        if raw is None:
            logger.debug(f"Cache miss: {key}")
            return None
        logger.debug(f"Cache hit: {key}")
        return TypeAdapter(type_).validate_json(raw)

    def set(self, key: str, value: Any, type_: Any, ttl: int = STATIC_TTL) -> None:
        self.backend.set(key, TypeAdapter(type_).dump_json(value).decode("utf-8"), ttl)

    def get_or_load(self, key: str, type_: Any, loader: Callable[[], T], ttl: int = STATIC_TTL) -> T:
        cached = self.get(key, type_)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, type_, ttl)
        return value

    def remove(self, *keys: str) -> None:
        self.backend.delete(*keys)

    def remove_by_prefix(self, prefix: str) -> None:
        removed = self.backend.delete_prefix(prefix)
        logger.debug(f"Removed {removed} cache entries under {prefix}")

    def clear(self) -> None:
        self.backend.clear()


def build_cache_backend() -> CacheBackend:
    if settings.CACHE_BACKEND == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisCacheBackend(client, namespace=settings.CACHE_KEY_PREFIX)
    return MemoryCacheBackend(max_entries=settings.CACHE_MAX_ENTRIES)


cache_service = CacheService(build_cache_backend())

def get_cache() -> CacheService:
    """Get the process-wide cache."""
    return cache_service
