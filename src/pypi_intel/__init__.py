"""pypi-intel: health, dependency, changelog and license intelligence for PyPI packages."""

from pypi_intel.cache import clear_cache, get_cache_stats

__version__ = "0.1.0"

__all__ = ["__version__", "clear_cache", "get_cache_stats"]
