"""Analyzers for fetching and processing package data.

Network-backed analyzers (``osv``, ``dependencies``, ``github``,
``pipeline``) are imported from their modules directly.
"""

from pypi_intel.analyzers.changelog import parse_changelog
from pypi_intel.analyzers.licenses import check_compatibility, normalize_license
from pypi_intel.analyzers.scorer import HealthScorer, score

__all__ = ["HealthScorer", "check_compatibility", "normalize_license", "parse_changelog", "score"]
