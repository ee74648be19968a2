"""Score calculator for package health metrics."""

from datetime import datetime, timezone

from pypi_intel.models.schemas import (
    CompatibilityMatrix,
    DownloadStats,
    HealthScore,
    PackageOverview,
    Rating,
    ScoreBreakdown,
)


class HealthScorer:
    """Calculates a 0-100 health score from registry-derived signals.

    Component maxima (total 100):
    - Recency: 25
    - Maintenance: 20
    - Compatibility: 25
    - Popularity: 20
    - Stability: 10

    Scoring is pure: the same inputs (and ``now``) always give the same
    result. Warnings and recommendations accumulate across components.
    """

    # (max age in days, points), checked in order
    RECENCY_STEPS = [(90, 25), (180, 20), (365, 15)]
    RECENCY_STALE = 5
    # Assumed age when the release date is unknown
    UNKNOWN_AGE_DAYS = 365

    # (monthly downloads below, points), checked in order
    POPULARITY_STEPS = [(100, 5), (1_000, 10), (10_000, 15)]
    POPULARITY_MAX = 20

    RATING_THRESHOLDS = [(85, Rating.EXCELLENT), (70, Rating.GOOD), (50, Rating.FAIR)]

    def score(
        self,
        overview: PackageOverview,
        compatibility: CompatibilityMatrix,
        downloads: DownloadStats | None,
        now: datetime | None = None,
    ) -> HealthScore:
        """Calculate the health score.

        Args:
            overview: Package overview (release date, maintainers, yanked).
            compatibility: Wheel and Python version availability.
            downloads: Download statistics. None counts as no downloads.
            now: Reference time for recency. Defaults to the current time.

        Returns:
            HealthScore with breakdown, rating, warnings and recommendations.
        """
        now = now or datetime.now(timezone.utc)
        warnings: list[str] = []
        recommendations: list[str] = []

        breakdown = ScoreBreakdown(
            recency=self._recency(overview, now, warnings, recommendations),
            maintenance=self._maintenance(overview, warnings, recommendations),
            compatibility=self._compatibility(compatibility, warnings, recommendations),
            popularity=self._popularity(downloads, warnings, recommendations),
            stability=self._stability(overview, warnings, recommendations),
        )
        total = (
            breakdown.recency
            + breakdown.maintenance
            + breakdown.compatibility
            + breakdown.popularity
            + breakdown.stability
        )

        return HealthScore(
            score=total,
            rating=self._rating(total),
            breakdown=breakdown,
            warnings=warnings,
            recommendations=recommendations,
        )

    def _recency(
        self,
        overview: PackageOverview,
        now: datetime,
        warnings: list[str],
        recommendations: list[str],
    ) -> int:
        released = overview.last_release_date
        if released is None:
            warnings.append("Release date unknown")
            days = self.UNKNOWN_AGE_DAYS
        else:
            if released.tzinfo is None:
                released = released.replace(tzinfo=timezone.utc)
            days = (now - released).days

        if days > 365:
            warnings.append("No releases in over a year")
            recommendations.append("Consider checking for actively maintained alternatives")
            return self.RECENCY_STALE
        if days > 180 and released is not None:
            warnings.append("No releases in the last 6 months")

        for max_days, points in self.RECENCY_STEPS:
            if days <= max_days:
                return points
        return self.RECENCY_STALE

    def _maintenance(
        self,
        overview: PackageOverview,
        warnings: list[str],
        recommendations: list[str],
    ) -> int:
        if overview.maintainer_count == 0:
            warnings.append("No maintainers listed")
            recommendations.append("Check the source repository for contributor activity")
            return 5
        if overview.maintainer_count == 1:
            warnings.append("Single maintainer - bus factor risk")
            recommendations.append("Consider contributing or forking if critical")
            return 15
        return 20

    def _compatibility(
        self,
        compatibility: CompatibilityMatrix,
        warnings: list[str],
        recommendations: list[str],
    ) -> int:
        if compatibility.source_only:
            warnings.append("Source-only distribution - requires build tools")
            recommendations.append("Ensure build dependencies are available")
            return 10
        if not compatibility.wheels_available:
            warnings.append("No wheels available")
            return 15
        if not compatibility.python_versions:
            warnings.append("Python version compatibility unclear")
            return 20
        return 25

    def _popularity(
        self,
        downloads: DownloadStats | None,
        warnings: list[str],
        recommendations: list[str],
    ) -> int:
        monthly = downloads.monthly if downloads else 0
        if monthly < 100:
            warnings.append("Very low download count")
            recommendations.append("Verify the package is actively used in production")
        for below, points in self.POPULARITY_STEPS:
            if monthly < below:
                return points
        return self.POPULARITY_MAX

    def _stability(
        self,
        overview: PackageOverview,
        warnings: list[str],
        recommendations: list[str],
    ) -> int:
        if overview.is_yanked:
            warnings.append("Latest version has been yanked")
            recommendations.append("Do not use this version - check for security issues")
            return 0
        return 10

    def _rating(self, score: int) -> Rating:
        for threshold, rating in self.RATING_THRESHOLDS:
            if score >= threshold:
                return rating
        return Rating.POOR


def score(
    overview: PackageOverview,
    compatibility: CompatibilityMatrix,
    downloads: DownloadStats | None,
    now: datetime | None = None,
) -> HealthScore:
    """Calculate a health score with the default scorer."""
    return HealthScorer().score(overview, compatibility, downloads, now=now)
