"""Runtime settings for the registry clients."""

import os

from pydantic import BaseModel, Field

ENV_PREFIX = "PYPI_INTEL_"


class Settings(BaseModel):
    """Endpoint bases and network policy.

    Every field can be overridden with a ``PYPI_INTEL_<FIELD>`` environment
    variable, e.g. ``PYPI_INTEL_TIMEOUT=5``. The stats and GitHub bases
    default to the public services; point them at a proxy if needed.
    """

    pypi_url: str = "https://pypi.org/pypi"
    stats_url: str = "https://pypistats.org/api"
    osv_url: str = "https://api.osv.dev/v1"
    github_raw_url: str = "https://raw.githubusercontent.com"

    timeout: float = Field(10.0, gt=0)  # seconds, per request
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(1.0, ge=0)  # seconds, doubled per attempt

    cache_ttl: float = Field(300.0, gt=0)
    cache_max_size: int = Field(100, ge=1)

    user_agent: str = "pypi-intel"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``PYPI_INTEL_*`` environment variables."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None and value != "":
                overrides[name] = value
        return cls(**overrides)
