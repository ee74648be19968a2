"""In-memory response cache with expiry and a bounded size."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60.0  # seconds
DEFAULT_MAX_SIZE = 100


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Returned by ResponseCache.get() on a miss so cached falsy values stay distinguishable.
MISSING: Any = _Missing()


@dataclass
class CacheEntry:
    """A cached value and the time it was stored."""

    key: str
    value: Any
    stored_at: float


class ResponseCache:
    """Key/value store with a time-to-live and first-in-first-out eviction.

    Entries expire ``ttl`` seconds after they were stored and are evicted
    lazily on read. When the cache is full, inserting a new key evicts the
    oldest-inserted entry regardless of how recently it was read.

    The cache is not locked: it is meant to be shared between coroutines on
    a single event loop, where ``get`` and ``set`` never suspend.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Seconds an entry stays fresh.
            max_size: Maximum number of entries held at once.
            clock: Monotonic time source, injectable for tests.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        # dicts keep insertion order, which is the eviction order
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any:
        """Return the fresh value stored under ``key``, or ``MISSING``."""
        entry = self._entries.get(key)
        if entry is None:
            return MISSING
        if self._clock() - entry.stored_at >= self.ttl:
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return MISSING
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, evicting the oldest entry if full."""
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Cache full, evicted {oldest}")
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "max_size": self.max_size}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not MISSING


_default_cache = ResponseCache()


def default_cache() -> ResponseCache:
    """Return the process-wide cache used when no cache is injected."""
    return _default_cache


def clear_cache() -> None:
    """Empty the process-wide cache."""
    _default_cache.clear()


def get_cache_stats() -> dict[str, int]:
    """Return ``{"size": ..., "max_size": ...}`` for the process-wide cache."""
    return _default_cache.stats()
