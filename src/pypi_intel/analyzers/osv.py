"""OSV (Open Source Vulnerabilities) client for PyPI packages."""

import logging

import pydantic

from pypi_intel.adapters.base import FetchError, ResilientFetcher, ValidationError
from pypi_intel.adapters.pypi import normalize_name
from pypi_intel.cache import MISSING, ResponseCache, default_cache
from pypi_intel.config import Settings
from pypi_intel.models.schemas import Vulnerability
from pypi_intel.monitoring import MetricsCollector

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"CRITICAL": 0, "HIGH": 1, "MODERATE": 2, "MEDIUM": 2, "LOW": 3, "UNKNOWN": 4}


class OSVClient:
    """Fetches vulnerability data from the OSV database.

    OSV is a distributed vulnerability database for open source:
    https://osv.dev/

    No authentication required. Lookups fail open: an outage or a
    malformed response yields an empty list rather than an error, so a
    missing security feed never blocks the rest of an analysis.
    """

    ECOSYSTEM = "PyPI"

    def __init__(
        self,
        fetcher: ResilientFetcher,
        cache: ResponseCache | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache if cache is not None else default_cache()
        self._settings = settings or Settings()
        self._metrics = metrics

    async def fetch_vulnerabilities(
        self,
        name: str,
        version: str | None = None,
    ) -> list[Vulnerability]:
        """Fetch known vulnerabilities for a package.

        Args:
            name: Package name.
            version: Restrict to vulnerabilities affecting this version.

        Returns:
            Vulnerabilities sorted by severity (critical first), then id.
        """
        normalized = normalize_name(name)
        cache_key = f"osv:{normalized}:{version or 'all'}"
        cached = self._cache.get(cache_key)
        if self._metrics:
            self._metrics.record_cache(hit=cached is not MISSING)
        if cached is not MISSING:
            return cached

        body: dict = {"package": {"name": normalized, "ecosystem": self.ECOSYSTEM}}
        if version:
            body["version"] = version

        url = f"{self._settings.osv_url}/query"
        try:
            data = await self._fetcher.post_json(url, body)
            vulns = self._parse_vulns(data, url)
        except (FetchError, ValidationError) as e:
            logger.warning(f"Vulnerability lookup failed for {name}: {e}")
            if self._metrics:
                self._metrics.record_fallback()
            return []

        self._cache.set(cache_key, vulns)
        return vulns

    def _parse_vulns(self, data: object, url: str) -> list[Vulnerability]:
        if not isinstance(data, dict):
            raise ValidationError(f"Unexpected OSV payload from {url}")
        # An empty object means no known vulnerabilities
        records = data.get("vulns") or []
        if not isinstance(records, list):
            raise ValidationError(f"Unexpected OSV payload from {url}")

        vulns = []
        for record in records:
            try:
                vulns.append(Vulnerability.model_validate(record))
            except pydantic.ValidationError as e:
                logger.debug(f"Skipping malformed OSV record: {e}")

        vulns.sort(key=lambda v: (SEVERITY_ORDER.get(v.severity_label, 4), v.id))
        return vulns


def count_by_severity(vulns: list[Vulnerability]) -> dict[str, int]:
    """Count vulnerabilities per severity label."""
    counts: dict[str, int] = {}
    for vuln in vulns:
        counts[vuln.severity_label] = counts.get(vuln.severity_label, 0) + 1
    return counts
