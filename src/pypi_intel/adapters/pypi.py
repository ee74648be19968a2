"""PyPI registry and pypistats download-statistics client."""

import logging
import re

import pydantic

from pypi_intel.adapters.base import (
    FetchError,
    NotFoundError,
    ResilientFetcher,
    ValidationError,
)
from pypi_intel.analyzers.suggestions import get_package_suggestions
from pypi_intel.cache import MISSING, ResponseCache, default_cache
from pypi_intel.config import Settings
from pypi_intel.models.schemas import DailyDownloads, PackageRecord, RecentDownloads
from pypi_intel.monitoring import MetricsCollector

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Normalize a PyPI package name.

    PyPI package names are case-insensitive and treat underscores,
    hyphens, and periods as equivalent.
    """
    return re.sub(r"[-_.]+", "-", name.strip()).lower()


class PyPIClient:
    """Client for the PyPI JSON API and pypistats.

    Data sources:
    - Package metadata: {pypi_url}/{package}/json
    - Recent downloads: {stats_url}/packages/{package}/recent
    - Daily downloads: {stats_url}/packages/{package}/overall

    Package metadata failures propagate because nothing can be shown
    without it. Download statistics are supplementary: failures are logged
    and replaced with zero-filled or empty payloads.
    """

    def __init__(
        self,
        fetcher: ResilientFetcher,
        cache: ResponseCache | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            fetcher: Resilient fetcher wrapping the shared HTTP client.
            cache: Response cache. Defaults to the process-wide cache.
            settings: Endpoint configuration.
            metrics: Optional collector for cache/fallback counters.
        """
        self._fetcher = fetcher
        self._cache = cache if cache is not None else default_cache()
        self._settings = settings or Settings()
        self._metrics = metrics

    def _cached(self, key: str):
        value = self._cache.get(key)
        if self._metrics:
            self._metrics.record_cache(hit=value is not MISSING)
        if value is not MISSING:
            logger.debug(f"Cache hit: {key}")
        return value

    def _fallback(self) -> None:
        if self._metrics:
            self._metrics.record_fallback()

    async def fetch_package_info(self, name: str) -> PackageRecord:
        """Fetch metadata for a PyPI package.

        Args:
            name: Package name, in any spelling.

        Returns:
            Validated PackageRecord.

        Raises:
            NotFoundError: If the package doesn't exist. ``suggestions`` holds
                close matches among popular packages.
            ValidationError: If the payload has no ``info`` object.
            FetchError: For any other failure after retries.
        """
        normalized = normalize_name(name)
        cache_key = f"pypi:{normalized}"
        cached = self._cached(cache_key)
        if cached is not MISSING:
            return cached

        url = f"{self._settings.pypi_url}/{normalized}/json"
        try:
            data = await self._fetcher.get_json(url)
        except NotFoundError as e:
            suggestions = get_package_suggestions(name)
            message = f'Package "{name}" not found on PyPI'
            if suggestions:
                message += f". Did you mean: {', '.join(suggestions)}?"
            raise NotFoundError(message, url=url, name=name, suggestions=suggestions) from e

        record = self._parse_record(data, url)
        self._cache.set(cache_key, record)
        return record

    async def fetch_package_version(self, name: str, version: str) -> PackageRecord:
        """Fetch metadata for one release of a package.

        Raises:
            NotFoundError: If the package or the version doesn't exist.
        """
        normalized = normalize_name(name)
        cache_key = f"pypi:{normalized}:{version}"
        cached = self._cached(cache_key)
        if cached is not MISSING:
            return cached

        url = f"{self._settings.pypi_url}/{normalized}/{version}/json"
        try:
            data = await self._fetcher.get_json(url)
        except NotFoundError as e:
            raise NotFoundError(
                f'Version {version} of "{name}" not found on PyPI', url=url, name=name
            ) from e

        record = self._parse_record(data, url)
        self._cache.set(cache_key, record)
        return record

    def _parse_record(self, data: object, url: str) -> PackageRecord:
        if not isinstance(data, dict) or not isinstance(data.get("info"), dict):
            raise ValidationError(f"Unexpected package payload from {url}")
        try:
            return PackageRecord.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid package payload from {url}: {e}") from e

    async def fetch_download_stats(self, name: str) -> RecentDownloads:
        """Fetch recent download counts (last day/week/month).

        Never raises: on any failure, or when ``data.last_day`` is not a
        number, a zero-filled payload is returned and nothing is cached.
        """
        normalized = normalize_name(name)
        cache_key = f"stats:recent:{normalized}"
        cached = self._cached(cache_key)
        if cached is not MISSING:
            return cached

        url = f"{self._settings.stats_url}/packages/{normalized}/recent"
        try:
            data = await self._fetcher.get_json(url, headers={"Accept": "application/json"})
            stats = self._parse_recent(data, url)
        except (FetchError, ValidationError) as e:
            logger.warning(f"Download stats unavailable for {name}: {e}")
            self._fallback()
            return RecentDownloads(package=normalized)

        self._cache.set(cache_key, stats)
        return stats

    def _parse_recent(self, data: object, url: str) -> RecentDownloads:
        counts = data.get("data") if isinstance(data, dict) else None
        last_day = counts.get("last_day") if isinstance(counts, dict) else None
        if isinstance(last_day, bool) or not isinstance(last_day, (int, float)):
            raise ValidationError(f"Invalid recent stats payload from {url}")
        try:
            return RecentDownloads.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid recent stats payload from {url}: {e}") from e

    async def fetch_daily_stats(self, name: str, days: int = 30) -> DailyDownloads:
        """Fetch per-day download counts for the last ``days`` days.

        Never raises: failures return an empty series.
        """
        normalized = normalize_name(name)
        cache_key = f"stats:daily:{normalized}:{days}"
        cached = self._cached(cache_key)
        if cached is not MISSING:
            return cached

        url = f"{self._settings.stats_url}/packages/{normalized}/overall"
        params = {"mirrors": "true", "period": "day", "days": str(days)}
        try:
            data = await self._fetcher.get_json(
                url, params=params, headers={"Accept": "application/json"}
            )
            if not isinstance(data, dict) or not isinstance(data.get("data"), list):
                raise ValidationError(f"Invalid daily stats payload from {url}")
            try:
                stats = DailyDownloads.model_validate(data)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid daily stats payload from {url}: {e}") from e
        except (FetchError, ValidationError) as e:
            logger.warning(f"Daily stats unavailable for {name}: {e}")
            self._fallback()
            return DailyDownloads(package=normalized)

        # The API may return more history than asked for
        points = sorted(stats.data, key=lambda p: p.date)
        stats = stats.model_copy(update={"data": points[-days:] if days > 0 else []})
        self._cache.set(cache_key, stats)
        return stats
