"""Data models and schemas."""

from pypi_intel.models.schemas import (
    ChangelogData,
    ChangelogEntry,
    CompatibilityMatrix,
    DependencyNode,
    DownloadStats,
    HealthScore,
    LicenseCompatibility,
    PackageOverview,
    PackageRecord,
    PackageReport,
    Vulnerability,
)

__all__ = [
    "ChangelogData",
    "ChangelogEntry",
    "CompatibilityMatrix",
    "DependencyNode",
    "DownloadStats",
    "HealthScore",
    "LicenseCompatibility",
    "PackageOverview",
    "PackageRecord",
    "PackageReport",
    "Vulnerability",
]
