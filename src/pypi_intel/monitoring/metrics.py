"""Counters for network and cache activity."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class ErrorEntry:
    """A recorded request failure."""

    timestamp: datetime
    url: str
    error_type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "url": self.url,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class FetchMetrics:
    """Snapshot of request, retry and cache counters."""

    requests: int = 0
    retries: int = 0
    failures: int = 0
    rate_limited: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fallbacks: int = 0

    # Errors (ring buffer of last N)
    recent_errors: deque[ErrorEntry] = field(default_factory=lambda: deque(maxlen=10))

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return self.cache_hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "retries": self.retries,
            "failures": self.failures,
            "rate_limited": self.rate_limited,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_hit_rate": round(self.cache_hit_rate, 3),
            "fallbacks": self.fallbacks,
            "recent_errors": [e.to_dict() for e in self.recent_errors],
        }


class MetricsCollector:
    """Collects counters from the fetcher and registry clients.

    One collector is shared by every client created by a ``PackageIntel``
    session. Updates happen between awaits on a single event loop, so no
    locking is needed.
    """

    def __init__(self) -> None:
        self._metrics = FetchMetrics()

    def record_request(self) -> None:
        self._metrics.requests += 1

    def record_retry(self, rate_limited: bool = False) -> None:
        self._metrics.retries += 1
        if rate_limited:
            self._metrics.rate_limited += 1

    def record_failure(self, url: str, error: Exception) -> None:
        self._metrics.failures += 1
        self._metrics.recent_errors.append(
            ErrorEntry(
                timestamp=datetime.now(timezone.utc),
                url=url,
                error_type=type(error).__name__,
                message=str(error)[:200],
            )
        )

    def record_cache(self, hit: bool) -> None:
        if hit:
            self._metrics.cache_hits += 1
        else:
            self._metrics.cache_misses += 1

    def record_fallback(self) -> None:
        self._metrics.fallbacks += 1

    def snapshot(self) -> FetchMetrics:
        """Return a copy of the current counters."""
        m = self._metrics
        return FetchMetrics(
            requests=m.requests,
            retries=m.retries,
            failures=m.failures,
            rate_limited=m.rate_limited,
            cache_hits=m.cache_hits,
            cache_misses=m.cache_misses,
            fallbacks=m.fallbacks,
            recent_errors=deque(m.recent_errors, maxlen=10),
        )

    def reset(self) -> None:
        self._metrics = FetchMetrics()
