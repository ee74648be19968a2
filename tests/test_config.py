import pytest
from pydantic import ValidationError

from pypi_intel.config import Settings


def test_defaults_point_at_public_services():
    settings = Settings()

    assert settings.pypi_url == "https://pypi.org/pypi"
    assert settings.osv_url == "https://api.osv.dev/v1"
    assert settings.max_attempts == 3
    assert settings.cache_ttl == 300.0
    assert settings.cache_max_size == 100


def test_from_env_overrides_and_coerces():
    settings = Settings.from_env(
        {
            "PYPI_INTEL_TIMEOUT": "2.5",
            "PYPI_INTEL_MAX_ATTEMPTS": "5",
            "PYPI_INTEL_PYPI_URL": "https://mirror.example/pypi",
            "PYPI_INTEL_BASE_DELAY": "",
            "UNRELATED": "x",
        }
    )

    assert settings.timeout == 2.5
    assert settings.max_attempts == 5
    assert settings.pypi_url == "https://mirror.example/pypi"
    assert settings.base_delay == 1.0


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("PYPI_INTEL_USER_AGENT", "ci-bot")

    assert Settings.from_env().user_agent == "ci-bot"


def test_invalid_values_are_rejected():
    with pytest.raises(ValidationError):
        Settings.from_env({"PYPI_INTEL_MAX_ATTEMPTS": "0"})
    with pytest.raises(ValidationError):
        Settings(timeout=-1)
