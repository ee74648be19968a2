import asyncio

import httpx
import pytest

from conftest import json_response, package_payload
from pypi_intel.adapters.base import NotFoundError, ValidationError
from pypi_intel.adapters.pypi import PyPIClient, normalize_name
from pypi_intel.monitoring import MetricsCollector


def test_normalize_name():
    assert normalize_name("Flask_SQLAlchemy") == "flask-sqlalchemy"
    assert normalize_name("zope.interface") == "zope-interface"
    assert normalize_name("  Django ") == "django"


def test_fetch_package_info_is_cached(make_fetcher, cache, settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return json_response(package_payload("Requests", "2.31.0"))

    client = PyPIClient(make_fetcher(handler), cache=cache, settings=settings)

    async def scenario():
        first = await client.fetch_package_info("Requests")
        second = await client.fetch_package_info("requests")
        return first, second

    first, second = asyncio.run(scenario())

    assert first.info.version == "2.31.0"
    assert second is first
    assert calls == ["https://pypi.test/pypi/requests/json"]


def test_fetch_package_info_tolerates_nulls(make_fetcher, cache, settings):
    payload = package_payload("demo", classifiers=None, license=None, yanked=None)
    payload["releases"] = {"1.0.0": None}
    client = PyPIClient(make_fetcher(lambda r: json_response(payload)), cache=cache, settings=settings)

    record = asyncio.run(client.fetch_package_info("demo"))

    assert record.info.classifiers == []
    assert record.info.requires_dist == []
    assert record.info.yanked is False
    assert record.releases == {"1.0.0": []}


def test_missing_info_is_a_validation_error(make_fetcher, cache, settings):
    client = PyPIClient(make_fetcher(lambda r: json_response({"releases": {}})), cache=cache, settings=settings)

    with pytest.raises(ValidationError):
        asyncio.run(client.fetch_package_info("demo"))
    assert len(cache) == 0


def test_not_found_carries_suggestions(make_fetcher, cache, settings):
    client = PyPIClient(make_fetcher(lambda r: httpx.Response(404)), cache=cache, settings=settings)

    with pytest.raises(NotFoundError) as exc_info:
        asyncio.run(client.fetch_package_info("reqeusts"))

    error = exc_info.value
    assert error.name == "reqeusts"
    assert error.suggestions == ["requests"]
    assert "Did you mean: requests" in str(error)


def test_fetch_package_version(make_fetcher, cache, settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return json_response(package_payload("demo", "0.9.0"))

    client = PyPIClient(make_fetcher(handler), cache=cache, settings=settings)
    record = asyncio.run(client.fetch_package_version("Demo", "0.9.0"))

    assert record.info.version == "0.9.0"
    assert seen == ["/pypi/demo/0.9.0/json"]
    assert "pypi:demo:0.9.0" in cache


def test_download_stats(make_fetcher, cache, settings):
    payload = {
        "data": {"last_day": 10, "last_week": 70, "last_month": 300},
        "package": "demo",
        "type": "recent_downloads",
    }
    client = PyPIClient(make_fetcher(lambda r: json_response(payload)), cache=cache, settings=settings)

    stats = asyncio.run(client.fetch_download_stats("demo"))

    assert stats.data.last_month == 300
    assert "stats:recent:demo" in cache


def test_malformed_stats_fall_back_to_zero_and_are_not_cached(make_fetcher, cache, settings):
    metrics = MetricsCollector()
    payload = {"data": {"last_day": "many"}}
    client = PyPIClient(
        make_fetcher(lambda r: json_response(payload)), cache=cache, settings=settings, metrics=metrics
    )

    stats = asyncio.run(client.fetch_download_stats("demo"))

    assert stats.data.last_day == 0
    assert stats.data.last_week == 0
    assert stats.data.last_month == 0
    assert "stats:recent:demo" not in cache
    assert metrics.snapshot().fallbacks == 1


def test_null_recent_counts_default_to_zero(make_fetcher, cache, settings):
    payload = {"data": {"last_day": 10, "last_week": None, "last_month": 300}, "package": None}
    client = PyPIClient(make_fetcher(lambda r: json_response(payload)), cache=cache, settings=settings)

    stats = asyncio.run(client.fetch_download_stats("demo"))

    assert (stats.data.last_day, stats.data.last_week, stats.data.last_month) == (10, 0, 300)
    assert stats.package == ""
    assert "stats:recent:demo" in cache


def test_null_daily_fields_default(make_fetcher, cache, settings):
    points = [
        {"category": None, "date": "2024-01-02", "downloads": None},
        {"category": "with_mirrors", "date": "2024-01-01", "downloads": 5},
    ]
    client = PyPIClient(
        make_fetcher(lambda r: json_response({"data": points, "package": None})), cache=cache, settings=settings
    )

    daily = asyncio.run(client.fetch_daily_stats("demo"))

    assert [(p.date, p.category, p.downloads) for p in daily.data] == [
        ("2024-01-01", "with_mirrors", 5),
        ("2024-01-02", "", 0),
    ]


def test_stats_outage_falls_back(make_fetcher, cache, settings):
    client = PyPIClient(make_fetcher(lambda r: httpx.Response(500)), cache=cache, settings=settings)

    stats = asyncio.run(client.fetch_download_stats("demo"))

    assert stats.data.last_month == 0
    assert len(cache) == 0


def test_daily_stats_are_trimmed_and_sorted(make_fetcher, cache, settings):
    seen = {}
    points = [
        {"category": "with_mirrors", "date": f"2024-01-{day:02d}", "downloads": day}
        for day in range(10, 0, -1)
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return json_response({"data": points, "package": "demo", "type": "overall_downloads"})

    client = PyPIClient(make_fetcher(handler), cache=cache, settings=settings)
    daily = asyncio.run(client.fetch_daily_stats("demo", days=3))

    assert seen["params"] == {"mirrors": "true", "period": "day", "days": "3"}
    assert [p.date for p in daily.data] == ["2024-01-08", "2024-01-09", "2024-01-10"]


def test_daily_stats_fallback_is_empty(make_fetcher, cache, settings):
    client = PyPIClient(make_fetcher(lambda r: json_response({"data": "nope"})), cache=cache, settings=settings)

    daily = asyncio.run(client.fetch_daily_stats("demo"))

    assert daily.data == []
    assert len(cache) == 0
