"""Derive overview, compatibility and download summaries from registry data."""

import re
from datetime import datetime

from pypi_intel.analyzers.licenses import format_license
from pypi_intel.models.schemas import (
    BundleStats,
    CompatibilityMatrix,
    DailyDownloads,
    DependencyStats,
    DownloadStats,
    HistoryPoint,
    PackageInfo,
    PackageOverview,
    PackageRecord,
    PlatformSupport,
    RecentDownloads,
    ReleaseFile,
    Trend,
)

PYTHON_CLASSIFIER = re.compile(r"^Programming Language :: Python :: (\d+\.\d+)$")
STUBS_FILE = re.compile(r"[-_.]stubs")


def parse_name(value: str) -> str | None:
    """Extract a display name from "Name <email>", "<email>" or a bare string."""
    value = value.strip()
    if not value:
        return None
    match = re.match(r"^([^<]+)<", value)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return value.strip("<> ") or None


def extract_maintainers(info: PackageInfo) -> list[str]:
    """Collect unique maintainer and author names from package metadata.

    ``author_email`` is only consulted when nothing else yields a name.
    """
    names: list[str] = []

    def add(name: str | None) -> None:
        if name and name not in names:
            names.append(name)

    for field in (info.maintainer, info.author):
        if field:
            for part in field.split(","):
                add(parse_name(part))
    if info.maintainer_email:
        for part in info.maintainer_email.split(","):
            add(parse_name(part))
    if not names and info.author_email:
        for part in info.author_email.split(","):
            add(parse_name(part))
    return names


def all_files(record: PackageRecord) -> list[ReleaseFile]:
    """Every file of every release, plus the current ``urls`` list."""
    files = [f for release in record.releases.values() for f in release]
    return files + record.urls


def last_release_date(record: PackageRecord) -> datetime | None:
    """Upload time of the current release, else the newest upload of any release."""
    dates = [f.uploaded_at for f in record.current_files() if f.uploaded_at]
    if not dates:
        dates = [f.uploaded_at for f in all_files(record) if f.uploaded_at]
    return max(dates) if dates else None


def build_overview(record: PackageRecord) -> PackageOverview:
    info = record.info
    files = record.current_files()
    is_yanked = info.yanked or (bool(files) and all(f.yanked for f in files))

    return PackageOverview(
        name=info.name,
        version=info.version,
        summary=info.summary,
        license=format_license(info.license, info.license_expression, info.classifiers),
        author=info.author or (parse_name(info.author_email) if info.author_email else None),
        maintainer=info.maintainer,
        maintainer_count=len(extract_maintainers(info)),
        last_release_date=last_release_date(record),
        project_urls=info.project_urls,
        is_yanked=is_yanked,
    )


def parse_python_versions(classifiers: list[str]) -> list[str]:
    """Python X.Y versions declared in trove classifiers, ascending."""
    versions = set()
    for classifier in classifiers:
        match = PYTHON_CLASSIFIER.match(classifier)
        if match:
            versions.add(match.group(1))
    return sorted(versions, key=lambda v: tuple(int(p) for p in v.split(".")))


def is_pure_wheel(filename: str) -> bool:
    filename = filename.lower()
    return "py2.py3" in filename or "py3-none-any" in filename or filename.endswith("-none-any.whl")


def build_compatibility(record: PackageRecord) -> CompatibilityMatrix:
    """Summarise wheel availability and platform support across all releases.

    Pure-Python wheels, and wheels without any recognised platform tag,
    count as supporting every platform.
    """
    files = all_files(record)
    wheels = [f for f in files if f.is_wheel]
    has_sdist = any(f.packagetype == "sdist" for f in files)

    platforms = PlatformSupport()
    pure_python = False
    for wheel in wheels:
        filename = wheel.filename.lower()
        if is_pure_wheel(filename):
            pure_python = True
        if "linux" in filename:
            platforms.linux = True
        if "macosx" in filename or "darwin" in filename:
            platforms.macos = True
        if "win32" in filename or "win_amd64" in filename or "-win_" in filename:
            platforms.windows = True

    if pure_python or (wheels and not (platforms.linux or platforms.macos or platforms.windows)):
        platforms = PlatformSupport(linux=True, macos=True, windows=True)

    return CompatibilityMatrix(
        python_versions=parse_python_versions(record.info.classifiers),
        platforms=platforms,
        wheels_available=bool(wheels),
        pure_python=pure_python,
        source_only=has_sdist and not wheels,
    )


def has_type_stubs(record: PackageRecord) -> bool:
    """Whether a typing classifier or a ``*-stubs`` file marks the package as typed."""
    if any(
        "Typed" in c or "Typing" in c or "Type Stubs" in c
        for c in record.info.classifiers
    ):
        return True
    return any(STUBS_FILE.search(f.filename) for f in all_files(record))


def analyze_bundle_stats(record: PackageRecord, dependencies: DependencyStats | None = None) -> BundleStats:
    """Sizes and wheel kinds of the current release's distribution files."""
    stats = BundleStats(has_type_stubs=has_type_stubs(record))
    platforms: list[str] = []
    for file in record.current_files():
        stats.total_size += file.size
        if file.is_wheel:
            stats.wheel_size += file.size
            filename = file.filename.lower()
            if is_pure_wheel(filename):
                stats.has_pure_python_wheel = True
                platform = "universal"
            elif "linux" in filename:
                platform = "linux"
            elif "macos" in filename or "darwin" in filename:
                platform = "macos"
            elif "win" in filename:
                platform = "windows"
            else:
                continue
            if platform != "universal":
                stats.has_binary_wheel = True
            if platform not in platforms:
                platforms.append(platform)
        elif file.packagetype == "sdist":
            stats.source_size = file.size
    stats.platforms = platforms

    if dependencies is not None:
        stats.dependencies = dependencies.direct
        stats.transitive_deps = dependencies.transitive
    return stats



def calculate_trend(current: float, previous: float) -> tuple[Trend, float]:
    """Classify a change as up/down/stable with a 5% dead band."""
    if previous == 0:
        return Trend.STABLE, 0.0
    percentage = (current - previous) / previous * 100
    if percentage > 5:
        trend = Trend.UP
    elif percentage < -5:
        trend = Trend.DOWN
    else:
        trend = Trend.STABLE
    return trend, round(abs(percentage), 1)


def build_download_stats(
    recent: RecentDownloads,
    daily: DailyDownloads | None = None,
) -> DownloadStats:
    """Combine recent counts with the daily series.

    The trend compares the mean of the last seven days with the seven days
    before them.
    """
    points = daily.data if daily else []
    if any(p.category == "with_mirrors" for p in points):
        points = [p for p in points if p.category == "with_mirrors"]
    history = [
        HistoryPoint(date=p.date, downloads=p.downloads)
        for p in sorted(points, key=lambda p: p.date)
    ]

    trend, percentage = Trend.STABLE, 0.0
    if len(history) >= 14:
        last_week = sum(p.downloads for p in history[-7:]) / 7
        previous_week = sum(p.downloads for p in history[-14:-7]) / 7
        trend, percentage = calculate_trend(last_week, previous_week)

    return DownloadStats(
        daily=recent.data.last_day,
        weekly=recent.data.last_week,
        monthly=recent.data.last_month,
        history=history,
        trend=trend,
        trend_percentage=percentage,
    )
