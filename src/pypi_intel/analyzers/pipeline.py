"""End-to-end analysis pipeline for PyPI packages."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from pypi_intel.adapters.base import PyPIIntelError, ResilientFetcher
from pypi_intel.adapters.pypi import PyPIClient
from pypi_intel.analyzers.dependencies import DependencyResolver, dependency_stats
from pypi_intel.analyzers.github import ChangelogFetcher
from pypi_intel.analyzers.licenses import check_compatibility
from pypi_intel.analyzers.osv import OSVClient
from pypi_intel.analyzers.overview import (
    analyze_bundle_stats,
    build_compatibility,
    build_download_stats,
    build_overview,
)
from pypi_intel.analyzers.scorer import HealthScorer
from pypi_intel.cache import ResponseCache
from pypi_intel.config import Settings
from pypi_intel.models.schemas import DependencyNode, LicenseCompatibility, PackageReport
from pypi_intel.monitoring import MetricsCollector

logger = logging.getLogger(__name__)


class PackageIntel:
    """Orchestrates the full analysis of a package.

    Pipeline stages:
    1. Fetch package metadata (failures propagate)
    2. Concurrently fetch download stats, vulnerabilities, the dependency
       tree and the changelog (each degrades on failure)
    3. Derive overview, compatibility and download summaries
    4. Calculate the health score

    Use as an async context manager; it owns the shared HTTP client.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: ResponseCache | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Endpoint and retry configuration.
            cache: Response cache. A fresh one sized from settings by default.
            client: Optional httpx client. If given it is not closed on exit.
            sleep: Backoff sleep, injectable for tests.
        """
        self.settings = settings or Settings()
        self.cache = (
            cache
            if cache is not None
            else ResponseCache(ttl=self.settings.cache_ttl, max_size=self.settings.cache_max_size)
        )
        self.metrics = MetricsCollector()
        self.scorer = HealthScorer()
        self._sleep = sleep
        self._owns_client = client is None
        self._http_client = client

        self.pypi: PyPIClient | None = None
        self.osv: OSVClient | None = None
        self.resolver: DependencyResolver | None = None
        self.changelogs: ChangelogFetcher | None = None

    async def __aenter__(self) -> "PackageIntel":
        """Set up the shared HTTP client and the clients using it."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.settings.user_agent},
            )
        fetcher = ResilientFetcher(
            self._http_client,
            timeout=self.settings.timeout,
            max_attempts=self.settings.max_attempts,
            base_delay=self.settings.base_delay,
            sleep=self._sleep,
            metrics=self.metrics,
        )
        shared = {"cache": self.cache, "settings": self.settings, "metrics": self.metrics}
        self.pypi = PyPIClient(fetcher, **shared)
        self.osv = OSVClient(fetcher, **shared)
        self.resolver = DependencyResolver(self.pypi)
        self.changelogs = ChangelogFetcher(fetcher, **shared)
        return self

    async def __aexit__(self, *args) -> None:
        """Clean up the HTTP client."""
        if self._owns_client and self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _require_open(self) -> None:
        if self.pypi is None:
            raise RuntimeError("PackageIntel must be used as an async context manager")

    async def analyze(self, name: str, include_optional: bool = False) -> PackageReport:
        """Run the full analysis on a single package.

        Args:
            name: Package name.
            include_optional: Include extras-only requirements of direct
                dependencies in the tree.

        Returns:
            Complete PackageReport.

        Raises:
            NotFoundError: If the package does not exist.
            FetchError: If package metadata cannot be fetched.
        """
        self._require_open()

        # Stage 1: metadata is required by everything else
        record = await self.pypi.fetch_package_info(name)
        version = record.info.version
        logger.info(f"Analyzing {record.info.name} {version}")

        # Stage 2: supplementary data, in parallel
        async with asyncio.TaskGroup() as tg:
            recent_task = tg.create_task(self.pypi.fetch_download_stats(name))
            daily_task = tg.create_task(self.pypi.fetch_daily_stats(name))
            vulns_task = tg.create_task(self.osv.fetch_vulnerabilities(name, version))
            deps_task = tg.create_task(self._resolve_dependencies(name, include_optional))
            changelog_task = tg.create_task(self.changelogs.fetch(record))

        # Stage 3 and 4: derived summaries and score
        overview = build_overview(record)
        compatibility = build_compatibility(record)
        downloads = build_download_stats(recent_task.result(), daily_task.result())
        health = self.scorer.score(overview, compatibility, downloads)
        dependencies = deps_task.result()
        stats = dependency_stats(dependencies)

        return PackageReport(
            overview=overview,
            compatibility=compatibility,
            downloads=downloads,
            health=health,
            vulnerabilities=vulns_task.result(),
            dependencies=dependencies,
            dependency_stats=stats,
            bundle=analyze_bundle_stats(record, stats),
            changelog=changelog_task.result(),
        )

    async def _resolve_dependencies(self, name: str, include_optional: bool) -> list[DependencyNode]:
        # Child failures are recorded on their nodes; only the root lookup can raise
        try:
            return await self.resolver.resolve(name, include_optional=include_optional)
        except PyPIIntelError as e:
            logger.warning(f"Dependency resolution failed for {name}: {e}")
            return []

    async def analyze_many(
        self,
        names: list[str],
        progress_callback=None,
    ) -> dict[str, PackageReport | PyPIIntelError]:
        """Analyze several packages concurrently.

        Args:
            names: Package names.
            progress_callback: Optional callback(completed, total, package_name).

        Returns:
            Mapping of each name to its report, or to the error that
            prevented the analysis.
        """
        unique = list(dict.fromkeys(names))
        results: dict[str, PackageReport | PyPIIntelError] = {}
        total = len(unique)

        async def run(package_name: str) -> None:
            try:
                results[package_name] = await self.analyze(package_name)
            except PyPIIntelError as e:
                logger.error(f"Error analyzing {package_name}: {e}")
                results[package_name] = e
            if progress_callback:
                progress_callback(len(results), total, package_name)

        async with asyncio.TaskGroup() as tg:
            for package_name in unique:
                tg.create_task(run(package_name))

        return {n: results[n] for n in unique}

    async def check_license(self, project_license: str, name: str) -> LicenseCompatibility:
        """Check whether a package's license fits a project license."""
        self._require_open()
        record = await self.pypi.fetch_package_info(name)
        overview = build_overview(record)
        return check_compatibility(project_license, overview.license)
