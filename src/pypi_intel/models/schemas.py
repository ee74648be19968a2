"""Pydantic models for registry data and derived analysis results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _none_to_default(value: Any, default: Any) -> Any:
    return default if value is None else value


# --- Registry payloads ---


class ReleaseFile(BaseModel):
    """A single distribution file attached to a release."""

    filename: str = ""
    url: str = ""
    size: int = 0
    upload_time: str | None = None
    upload_time_iso_8601: str | None = None
    python_version: str = ""
    packagetype: str = ""  # bdist_wheel, sdist, ...
    requires_python: str | None = None
    yanked: bool = False
    yanked_reason: str | None = None

    @field_validator("filename", "url", "python_version", "packagetype", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")

    @field_validator("size", mode="before")
    @classmethod
    def _int_default(cls, value: Any) -> Any:
        return _none_to_default(value, 0)

    @field_validator("yanked", mode="before")
    @classmethod
    def _bool_default(cls, value: Any) -> Any:
        return _none_to_default(value, False)

    @property
    def is_wheel(self) -> bool:
        return self.packagetype == "bdist_wheel" or self.filename.endswith(".whl")

    @property
    def uploaded_at(self) -> datetime | None:
        """Upload timestamp as an aware datetime, if parseable."""
        raw = self.upload_time_iso_8601 or self.upload_time
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class PackageInfo(BaseModel):
    """The ``info`` block of the PyPI JSON API."""

    name: str = ""
    version: str = ""
    summary: str = ""
    description: str = ""
    author: str | None = None
    author_email: str | None = None
    maintainer: str | None = None
    maintainer_email: str | None = None
    license: str | None = None
    license_expression: str | None = None
    keywords: str | None = None
    classifiers: list[str] = Field(default_factory=list)
    home_page: str | None = None
    requires_python: str | None = None
    requires_dist: list[str] = Field(default_factory=list)
    project_urls: dict[str, str] = Field(default_factory=dict)
    yanked: bool = False
    yanked_reason: str | None = None

    @field_validator("name", "version", "summary", "description", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")

    @field_validator("classifiers", "requires_dist", mode="before")
    @classmethod
    def _list_default(cls, value: Any) -> Any:
        return _none_to_default(value, [])

    @field_validator("project_urls", mode="before")
    @classmethod
    def _urls_default(cls, value: Any) -> Any:
        if not value:
            return {}
        # Drop entries whose URL is null
        return {k: v for k, v in value.items() if v}

    @field_validator("yanked", mode="before")
    @classmethod
    def _bool_default(cls, value: Any) -> Any:
        return _none_to_default(value, False)


class PackageRecord(BaseModel):
    """Canonical package metadata as returned by ``/pypi/{name}/json``."""

    info: PackageInfo
    releases: dict[str, list[ReleaseFile]] = Field(default_factory=dict)
    urls: list[ReleaseFile] = Field(default_factory=list)

    @field_validator("releases", mode="before")
    @classmethod
    def _releases_default(cls, value: Any) -> Any:
        if not value:
            return {}
        return {version: files or [] for version, files in value.items()}

    @field_validator("urls", mode="before")
    @classmethod
    def _urls_default(cls, value: Any) -> Any:
        return _none_to_default(value, [])

    def current_files(self) -> list[ReleaseFile]:
        """Files for the current version, preferring the top-level ``urls`` list."""
        if self.urls:
            return self.urls
        return self.releases.get(self.info.version, [])


class RecentCounts(BaseModel):
    last_day: int = 0
    last_week: int = 0
    last_month: int = 0

    @field_validator("last_day", "last_week", "last_month", mode="before")
    @classmethod
    def _int_default(cls, value: Any) -> Any:
        return _none_to_default(value, 0)


class RecentDownloads(BaseModel):
    """pypistats ``/recent`` payload."""

    data: RecentCounts = Field(default_factory=RecentCounts)
    package: str = ""
    type: str = "recent_downloads"

    @field_validator("package", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")


class DailyPoint(BaseModel):
    category: str = ""
    date: str
    downloads: int = 0

    @field_validator("category", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")

    @field_validator("downloads", mode="before")
    @classmethod
    def _int_default(cls, value: Any) -> Any:
        return _none_to_default(value, 0)


class DailyDownloads(BaseModel):
    """pypistats ``/overall`` payload."""

    data: list[DailyPoint] = Field(default_factory=list)
    package: str = ""
    type: str = "overall_downloads"

    @field_validator("package", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")


class Vulnerability(BaseModel):
    """Subset of an OSV vulnerability record."""

    id: str
    summary: str = ""
    details: str = ""
    aliases: list[str] = Field(default_factory=list)
    severity: list[dict] = Field(default_factory=list)
    published: datetime | None = None
    modified: datetime | None = None
    affected: list[dict] = Field(default_factory=list)
    references: list[dict] = Field(default_factory=list)
    database_specific: dict = Field(default_factory=dict)

    @field_validator("summary", "details", mode="before")
    @classmethod
    def _str_default(cls, value: Any) -> Any:
        return _none_to_default(value, "")

    @field_validator(
        "aliases", "severity", "affected", "references", mode="before"
    )
    @classmethod
    def _list_default(cls, value: Any) -> Any:
        return _none_to_default(value, [])

    @field_validator("database_specific", mode="before")
    @classmethod
    def _dict_default(cls, value: Any) -> Any:
        return _none_to_default(value, {})

    @property
    def severity_label(self) -> str:
        """Severity string (CRITICAL, HIGH, MEDIUM, LOW, UNKNOWN)."""
        label = self.database_specific.get("severity")
        if isinstance(label, str) and label:
            return label.upper()
        for affected in self.affected:
            eco_specific = affected.get("ecosystem_specific") or {}
            label = eco_specific.get("severity")
            if isinstance(label, str) and label:
                return label.upper()
        return "UNKNOWN"

    @property
    def fixed_versions(self) -> list[str]:
        fixed = []
        for affected in self.affected:
            for rng in affected.get("ranges") or []:
                for event in rng.get("events") or []:
                    if "fixed" in event and event["fixed"] not in fixed:
                        fixed.append(event["fixed"])
        return fixed


# --- Derived models ---


class PackageOverview(BaseModel):
    """Flattened view of a package used by the scorer."""

    name: str
    version: str
    summary: str = ""
    license: str = "Unknown"
    author: str | None = None
    maintainer: str | None = None
    maintainer_count: int = 0
    last_release_date: datetime | None = None
    project_urls: dict[str, str] = Field(default_factory=dict)
    is_yanked: bool = False


class PlatformSupport(BaseModel):
    linux: bool = False
    macos: bool = False
    windows: bool = False


class CompatibilityMatrix(BaseModel):
    """Python version and platform support of the current release."""

    python_versions: list[str] = Field(default_factory=list)
    platforms: PlatformSupport = Field(default_factory=PlatformSupport)
    wheels_available: bool = False
    pure_python: bool = False
    source_only: bool = False


class BundleStats(BaseModel):
    """Distribution sizes and wheel kinds of the current release."""

    total_size: int = 0
    wheel_size: int = 0
    source_size: int = 0
    dependencies: int = 0
    transitive_deps: int = 0
    has_type_stubs: bool = False
    has_pure_python_wheel: bool = False
    has_binary_wheel: bool = False
    platforms: list[str] = Field(default_factory=list)


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class HistoryPoint(BaseModel):
    date: str
    downloads: int = 0


class DownloadStats(BaseModel):
    """Download counts and history summarised for display and scoring."""

    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    history: list[HistoryPoint] = Field(default_factory=list)
    trend: Trend = Trend.STABLE
    trend_percentage: float = 0.0


class Rating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ScoreBreakdown(BaseModel):
    recency: int = Field(ge=0, le=25)
    maintenance: int = Field(ge=0, le=20)
    compatibility: int = Field(ge=0, le=25)
    popularity: int = Field(ge=0, le=20)
    stability: int = Field(ge=0, le=10)


class HealthScore(BaseModel):
    """Heuristic package health score."""

    score: int = Field(ge=0, le=100)
    rating: Rating
    breakdown: ScoreBreakdown
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class DependencyNode(BaseModel):
    """A node in the depth-2 dependency tree."""

    name: str
    version: str | None = None
    specifier: str = ""
    is_optional: bool = False
    extras: list[str] = Field(default_factory=list)
    environment: str | None = None
    children: list["DependencyNode"] = Field(default_factory=list)
    error: str | None = None


class DependencyStats(BaseModel):
    direct: int = 0
    transitive: int = 0
    optional: int = 0
    failed: int = 0
    unique: int = 0


class ChangelogSource(str, Enum):
    GITHUB = "github"
    PYPI = "pypi"
    FALLBACK = "fallback"


class ChangelogEntry(BaseModel):
    version: str
    date: str | None = None
    changes: list[str] = Field(default_factory=list)
    is_breaking: bool = False
    is_security: bool = False
    is_feature: bool = False
    is_fix: bool = False


class ChangelogData(BaseModel):
    entries: list[ChangelogEntry] = Field(default_factory=list)
    source: ChangelogSource
    error: str | None = None


class UpdateRecommendation(BaseModel):
    breaking_changes: bool = False
    security_fixes: bool = False
    new_features: bool = False
    bug_fixes: bool = False
    risk_score: int = Field(ge=0, le=100, default=0)


class LicenseType(str, Enum):
    MIT = "MIT"
    APACHE_2 = "Apache-2.0"
    BSD_2 = "BSD-2-Clause"
    BSD_3 = "BSD-3-Clause"
    GPL_2 = "GPL-2.0"
    GPL_3 = "GPL-3.0"
    LGPL_21 = "LGPL-2.1"
    LGPL_3 = "LGPL-3.0"
    MPL_2 = "MPL-2.0"
    ISC = "ISC"
    UNLICENSE = "Unlicense"
    CC0 = "CC0-1.0"
    PROPRIETARY = "Proprietary"
    UNKNOWN = "Unknown"


class Risk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LicenseCompatibility(BaseModel):
    is_compatible: bool
    project_license: LicenseType
    package_license: LicenseType
    risk: Risk
    explanation: str
    requires_source_disclosure: bool = False
    requires_same_license: bool = False


class PackageReport(BaseModel):
    """Everything known about a package after a full analysis."""

    overview: PackageOverview
    compatibility: CompatibilityMatrix
    downloads: DownloadStats
    health: HealthScore
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    dependencies: list[DependencyNode] = Field(default_factory=list)
    dependency_stats: DependencyStats = Field(default_factory=DependencyStats)
    bundle: BundleStats = Field(default_factory=BundleStats)
    changelog: ChangelogData
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
