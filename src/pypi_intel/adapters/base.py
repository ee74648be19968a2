"""Error taxonomy and the resilient HTTP fetcher shared by all registry clients."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable

import httpx

from pypi_intel.monitoring import MetricsCollector

logger = logging.getLogger(__name__)

# Upper bound on any server-requested wait, in seconds
MAX_RETRY_AFTER = 60.0


class PyPIIntelError(Exception):
    """Base class for all errors raised by pypi-intel."""


class FetchError(PyPIIntelError):
    """Raised when an upstream request fails.

    Attributes:
        url: The requested URL.
        status_code: HTTP status, if a response was received.
    """

    def __init__(self, message: str, url: str = "", status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class FetchTimeoutError(FetchError):
    """Raised when a request does not complete within the timeout."""


class RateLimitError(FetchError):
    """Raised when an upstream keeps answering 429 after all retries."""

    def __init__(self, message: str, url: str = "", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, url=url, status_code=429)


class NotFoundError(FetchError):
    """Raised on a 404. Carries package-name suggestions when known."""

    def __init__(
        self,
        message: str,
        url: str = "",
        name: str | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        self.name = name
        self.suggestions = suggestions or []
        super().__init__(message, url=url, status_code=404)


class NetworkError(FetchError):
    """Raised when the connection itself fails (DNS, refused, reset...)."""


class ValidationError(PyPIIntelError):
    """Raised when an upstream payload does not have the expected shape."""


class PartialResolutionError(PyPIIntelError):
    """A single dependency could not be resolved.

    Never propagated past the resolver; its message is stored on the
    failing ``DependencyNode``.
    """

    def __init__(self, name: str, cause: Exception) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"Could not resolve {name}: {cause}")


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a ``Retry-After`` header into seconds.

    Accepts delta-seconds and HTTP dates, clamped to
    ``[0, MAX_RETRY_AFTER]``. Returns None if absent or invalid.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        seconds = (when - now).total_seconds()
    if math.isnan(seconds):
        return None
    return min(max(0.0, seconds), MAX_RETRY_AFTER)


class ResilientFetcher:
    """Wraps an ``httpx.AsyncClient`` with a timeout and a retry policy.

    Retry policy per attempt (``max_attempts`` in total):
    - 429: wait ``Retry-After`` seconds if given, else ``base_delay * 2**attempt``
    - 404: raise ``NotFoundError`` immediately
    - other 4xx: raise ``FetchError`` immediately
    - 5xx, timeouts, transport errors: wait ``base_delay * 2**attempt`` and retry

    When attempts run out the last error is raised.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 10.0,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: Shared httpx client. The fetcher does not close it.
            timeout: Seconds allowed for each attempt.
            max_attempts: Total attempts including the first one.
            base_delay: Backoff base in seconds.
            sleep: Awaitable sleep, injectable for tests.
            metrics: Optional collector for request/retry counters.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        self._metrics = metrics

    def backoff(self, attempt: int) -> float:
        """Delay in seconds before retrying after ``attempt`` (0-based)."""
        return self.base_delay * (2**attempt)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._metrics:
            self._metrics.record_request()
        try:
            async with asyncio.timeout(self.timeout):
                return await self._client.request(method, url, **kwargs)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise FetchTimeoutError(
                f"Request timed out after {self.timeout}s: {url}", url=url
            ) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Network error for {url}: {e}", url=url) from e

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying according to the policy.

        Returns:
            The first successful (non-error) response.

        Raises:
            NotFoundError, RateLimitError, FetchTimeoutError, NetworkError, FetchError.
        """
        last_error: FetchError | None = None

        for attempt in range(self.max_attempts):
            is_last = attempt == self.max_attempts - 1
            rate_limited = False

            try:
                response = await self._send(method, url, **kwargs)
            except (FetchTimeoutError, NetworkError) as e:
                last_error = e
                delay = self.backoff(attempt)
            else:
                status = response.status_code
                if status < 400:
                    return response

                if status == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    last_error = RateLimitError(
                        f"Rate limited by {url}", url=url, retry_after=retry_after
                    )
                    delay = retry_after if retry_after is not None else self.backoff(attempt)
                    rate_limited = True
                elif status == 404:
                    error = NotFoundError(f"Not found: {url}", url=url)
                    self._record_failure(url, error)
                    raise error
                elif status < 500:
                    error = FetchError(
                        f"HTTP {status} {response.reason_phrase} for {url}",
                        url=url,
                        status_code=status,
                    )
                    self._record_failure(url, error)
                    raise error
                else:
                    last_error = FetchError(
                        f"HTTP {status} {response.reason_phrase} for {url}",
                        url=url,
                        status_code=status,
                    )
                    delay = self.backoff(attempt)

            if is_last:
                break

            logger.warning(
                f"{last_error}; retrying in {delay:.1f}s "
                f"(attempt {attempt + 2}/{self.max_attempts})"
            )
            if self._metrics:
                self._metrics.record_retry(rate_limited=rate_limited)
            await self._sleep(delay)

        assert last_error is not None
        self._record_failure(url, last_error)
        raise last_error

    def _record_failure(self, url: str, error: Exception) -> None:
        if self._metrics:
            self._metrics.record_failure(url, error)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode its JSON body."""
        response = await self.request("GET", url, **kwargs)
        return self._decode_json(response, url)

    async def post_json(self, url: str, body: dict, **kwargs: Any) -> Any:
        """POST a JSON body and decode the JSON response."""
        response = await self.request("POST", url, json=body, **kwargs)
        return self._decode_json(response, url)

    async def get_text(self, url: str, **kwargs: Any) -> str:
        response = await self.request("GET", url, **kwargs)
        return response.text

    @staticmethod
    def _decode_json(response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(f"Invalid JSON from {url}: {e}") from e
