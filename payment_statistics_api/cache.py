"""
Cache backends for derived payment listings and statistics.
Values are opaque strings (JSON produced by the service). Entries are grouped
under a cache name and evicted a whole name at a time.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

PAYMENTS_BY_STATUS = "payments_by_status"
PAYMENTS_SORTED = "payments_sorted"
PAYMENT_STATISTICS = "payment_statistics"
ALL_CACHE_NAMES = (PAYMENTS_BY_STATUS, PAYMENTS_SORTED, PAYMENT_STATISTICS)

KEY_SEPARATOR = "::"


def cache_key(name: str, suffix: str = "all") -> str:
    return f"{name}{KEY_SEPARATOR}{suffix}"


def _cache_name(key: str) -> str:
    return key.split(KEY_SEPARATOR, 1)[0]


class StatisticsCache(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def evict_all(self, names: Iterable[str]) -> None:
        """Drop every entry stored under any of the given cache names."""


class InMemoryCache(StatisticsCache):
    """
    Process-local cache. Expiry is checked lazily on read.
    """
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def evict_all(self, names: Iterable[str]) -> None:
        names = set(names)
        for key in self._entries.copy():
            if _cache_name(key) in names:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache(StatisticsCache):
    """
    Redis-backed cache. Connection problems are logged and treated as a miss;
    readers never trust an entry from an older store generation anyway.
    """
    def __init__(self, client: redis.Redis, prefix: str = "payments:") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "payments:") -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.setex(self.prefix + key, ttl_seconds, value)
        except redis.RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    def evict_all(self, names: Iterable[str]) -> None:
        for name in names:
            pattern = f"{self.prefix}{name}{KEY_SEPARATOR}*"
            try:
                keys = list(self.client.scan_iter(match=pattern))
                if keys:
                    self.client.delete(*keys)
            except redis.RedisError as e:
                logger.warning("Cache eviction failed for %s: %s", name, e)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
