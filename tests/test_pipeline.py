import asyncio

import httpx
import pytest

from conftest import json_response, package_payload
from pypi_intel.adapters.base import NotFoundError
from pypi_intel.analyzers.pipeline import PackageIntel
from pypi_intel.cache import MISSING, ResponseCache
from pypi_intel.models.schemas import ChangelogSource, Rating, Risk

FILES = [
    {
        "filename": "demo-2.0.0-py3-none-any.whl",
        "packagetype": "bdist_wheel",
        "upload_time_iso_8601": "2024-05-01T00:00:00Z",
    }
]


def fake_services(down: set[str] = frozenset()):
    """Route requests by host to canned PyPI, pypistats, OSV and GitHub responses."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        seen.append(f"{host}{path}")
        if host in down:
            return httpx.Response(503)
        if host == "pypi.test":
            name = path.split("/")[2]
            if name == "demo":
                return json_response(
                    package_payload(
                        "demo",
                        "2.0.0",
                        requires_dist=["helper>=1.0", "ghost"],
                        releases={"1.0.0": [], "2.0.0": FILES},
                        urls=FILES,
                        license="MIT",
                        maintainer="Alice, Bob",
                        project_urls={"Source": "https://github.com/owner/demo"},
                        classifiers=["Programming Language :: Python :: 3.12"],
                    )
                )
            if name == "helper":
                return json_response(package_payload("helper", "1.5", license="GPL-3.0"))
            return httpx.Response(404)
        if host == "stats.test":
            if path.endswith("/recent"):
                return json_response({"data": {"last_day": 100, "last_week": 700, "last_month": 50_000}})
            return json_response({"data": []})
        if host == "osv.test":
            return json_response({"vulns": [{"id": "PYSEC-1", "database_specific": {"severity": "HIGH"}}]})
        if host == "raw.test":
            if path == "/owner/demo/main/CHANGELOG.md":
                return httpx.Response(200, text="## 2.0.0\n- Added a thing\n")
            return httpx.Response(404)
        return httpx.Response(404)

    handler.seen = seen
    return handler


def make_intel(settings, sleep, handler) -> PackageIntel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PackageIntel(settings=settings, client=client, sleep=sleep)


def test_analyze_assembles_report(settings, sleep):
    async def scenario():
        async with make_intel(settings, sleep, fake_services()) as intel:
            return await intel.analyze("Demo")

    report = asyncio.run(scenario())

    assert report.overview.name == "demo"
    assert report.overview.maintainer_count == 2
    assert report.compatibility.pure_python is True
    assert report.downloads.monthly == 50_000
    assert [v.id for v in report.vulnerabilities] == ["PYSEC-1"]
    assert report.changelog.source == ChangelogSource.GITHUB
    assert [d.name for d in report.dependencies] == ["helper", "ghost"]
    assert report.dependencies[0].version == "1.5"
    assert report.dependencies[1].error is not None
    assert report.dependency_stats.failed == 1
    assert report.bundle.dependencies == 2
    assert report.bundle.platforms == ["universal"]
    assert 0 <= report.health.score <= 100
    assert report.health.breakdown.popularity == 20


def test_supplementary_outages_degrade(settings, sleep):
    handler = fake_services(down={"stats.test", "osv.test", "raw.test"})

    async def scenario():
        async with make_intel(settings, sleep, handler) as intel:
            return await intel.analyze("demo"), intel.metrics.snapshot()

    report, snapshot = asyncio.run(scenario())

    assert report.vulnerabilities == []
    assert report.downloads.monthly == 0
    assert report.changelog.source == ChangelogSource.PYPI
    assert report.changelog.error
    assert "Very low download count" in report.health.warnings
    assert snapshot.fallbacks >= 3


def test_missing_package_propagates(settings, sleep):
    async def scenario():
        async with make_intel(settings, sleep, fake_services()) as intel:
            await intel.analyze("nope")

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


def test_analyze_many_collects_errors(settings, sleep):
    progress = []

    async def scenario():
        async with make_intel(settings, sleep, fake_services()) as intel:
            return await intel.analyze_many(
                ["demo", "nope", "demo"],
                progress_callback=lambda done, total, name: progress.append((done, total)),
            )

    results = asyncio.run(scenario())

    assert list(results) == ["demo", "nope"]
    assert results["demo"].overview.version == "2.0.0"
    assert isinstance(results["nope"], NotFoundError)
    assert sorted(progress) == [(1, 2), (2, 2)]


def test_metadata_is_fetched_once_per_session(settings, sleep):
    handler = fake_services()

    async def scenario():
        async with make_intel(settings, sleep, handler) as intel:
            await intel.analyze("demo")
            await intel.analyze("demo")

    asyncio.run(scenario())

    assert handler.seen.count("pypi.test/pypi/demo/json") == 1


def test_check_license(settings, sleep):
    async def scenario():
        async with make_intel(settings, sleep, fake_services()) as intel:
            return await intel.check_license("MIT", "helper")

    result = asyncio.run(scenario())

    assert result.is_compatible is False
    assert result.risk == Risk.CRITICAL


def test_requires_context_manager(settings):
    intel = PackageIntel(settings=settings)

    with pytest.raises(RuntimeError):
        asyncio.run(intel.analyze("demo"))


def test_stale_release_is_scored_from_upload_time(settings, sleep):
    async def scenario():
        async with make_intel(settings, sleep, fake_services()) as intel:
            return await intel.analyze("demo")

    report = asyncio.run(scenario())

    # released 2024-05-01, long past a year
    assert report.health.breakdown.recency == 5
    assert report.health.score == 80
    assert report.health.rating == Rating.GOOD


def test_injected_empty_cache_is_used(settings, sleep):
    injected = ResponseCache()
    handler = fake_services()

    async def scenario():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with PackageIntel(settings=settings, cache=injected, client=client, sleep=sleep) as intel:
            assert intel.cache is injected
            await intel.analyze("demo")

    asyncio.run(scenario())

    assert len(injected) > 0
    assert injected.get("pypi:demo") is not MISSING
