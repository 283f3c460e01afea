"""In-memory TTL cache used for remote credentials and temporary links."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar


LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


@dataclass
class CacheItem(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Map keys to values that expire after a per-item time to live.

    *clock* returns seconds as a float and defaults to :func:`time.monotonic`;
    tests inject a fake clock to step through expiry without sleeping.
    """

    def __init__(self, *, clock: Clock = time.monotonic, name: str = "cache") -> None:
        self._clock = clock
        self._name = name
        self._items: Dict[K, CacheItem[V]] = {}
        self._generations: Dict[K, int] = {}

    @property
    def clock(self) -> Clock:
        return self._clock

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def get(self, key: K) -> Optional[V]:
        """Return the cached value for *key* unless it has expired."""

        item = self._items.get(key)
        if item is None:
            return None
        if self._clock() >= item.expires_at:
            del self._items[key]
            LOGGER.debug("%s entry expired: %s", self._name, key)
            return None
        return item.value

    def expires_at(self, key: K) -> Optional[float]:
        item = self._items.get(key)
        return item.expires_at if item is not None else None

    def set(self, key: K, value: V, ttl: float) -> V:
        self._items[key] = CacheItem(value=value, expires_at=self._clock() + ttl)
        return value

    async def get_or_populate(
        self,
        key: K,
        factory: Callable[[], Awaitable[V]],
        ttl: float,
    ) -> V:
        """Return the cached value or await *factory* and cache its result.

        Concurrent misses for the same key each call *factory*; the last
        result stored wins. A value whose key was invalidated while *factory*
        was running is returned to the caller but not cached.
        """

        cached = self.get(key)
        if cached is not None:
            LOGGER.debug("%s hit: %s", self._name, key)
            return cached
        LOGGER.debug("%s miss: %s", self._name, key)
        generation = self._generations.get(key, 0)
        value = await factory()
        if self._generations.get(key, 0) != generation:
            LOGGER.debug("%s discarded value invalidated mid-fetch: %s", self._name, key)
            return value
        return self.set(key, value, ttl)

    def invalidate(self, key: K) -> bool:
        """Drop *key*; return whether an entry was present.

        Fetches for *key* already in flight will not cache their result.
        """

        self._generations[key] = self._generations.get(key, 0) + 1
        removed = self._items.pop(key, None) is not None
        if removed:
            LOGGER.debug("%s invalidated: %s", self._name, key)
        return removed

    def clear(self) -> None:
        for key in list(self._items):
            self.invalidate(key)


__all__ = ["CacheItem", "Clock", "TTLCache"]
