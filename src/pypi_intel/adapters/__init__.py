"""Registry adapters and the shared resilient fetcher."""

from pypi_intel.adapters.base import (
    FetchError,
    FetchTimeoutError,
    NetworkError,
    NotFoundError,
    PartialResolutionError,
    PyPIIntelError,
    RateLimitError,
    ResilientFetcher,
    ValidationError,
)
from pypi_intel.adapters.pypi import PyPIClient, normalize_name

__all__ = [
    "FetchError",
    "FetchTimeoutError",
    "NetworkError",
    "NotFoundError",
    "PartialResolutionError",
    "PyPIClient",
    "PyPIIntelError",
    "RateLimitError",
    "ResilientFetcher",
    "ValidationError",
    "normalize_name",
]
