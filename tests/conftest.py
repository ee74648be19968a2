import json
from typing import Callable

import httpx
import pytest

from pypi_intel.adapters.base import ResilientFetcher
from pypi_intel.cache import ResponseCache
from pypi_intel.config import Settings
from pypi_intel.monitoring import MetricsCollector


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


def package_payload(
    name: str,
    version: str = "1.0.0",
    requires_dist: list[str] | None = None,
    releases: dict | None = None,
    urls: list | None = None,
    **info,
) -> dict:
    """A minimal PyPI JSON API response."""
    return {
        "info": {
            "name": name,
            "version": version,
            "summary": f"{name} summary",
            "requires_dist": requires_dist,
            "project_urls": None,
            **info,
        },
        "releases": releases if releases is not None else {version: []},
        "urls": urls or [],
    }


def json_response(data, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(data).encode(),
        headers={"Content-Type": "application/json", **(headers or {})},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        pypi_url="https://pypi.test/pypi",
        stats_url="https://stats.test/api",
        osv_url="https://osv.test/v1",
        github_raw_url="https://raw.test",
    )


@pytest.fixture
def make_fetcher(sleep: RecordingSleep) -> Callable[..., ResilientFetcher]:
    """Build a fetcher over a mock transport: make_fetcher(handler, **kwargs)."""

    def factory(handler, metrics: MetricsCollector | None = None, **kwargs) -> ResilientFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ResilientFetcher(client, sleep=sleep, metrics=metrics, **kwargs)

    return factory


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(clock=clock)
