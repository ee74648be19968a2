from datetime import datetime, timedelta, timezone

import pytest

from pypi_intel.analyzers.scorer import HealthScorer, score
from pypi_intel.models.schemas import CompatibilityMatrix, DownloadStats, PackageOverview, Rating

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def overview(days_old: int | None = 30, maintainers: int = 3, yanked: bool = False) -> PackageOverview:
    released = NOW - timedelta(days=days_old) if days_old is not None else None
    return PackageOverview(
        name="demo",
        version="1.0.0",
        maintainer_count=maintainers,
        last_release_date=released,
        is_yanked=yanked,
    )


def healthy_compat() -> CompatibilityMatrix:
    return CompatibilityMatrix(python_versions=["3.11", "3.12"], wheels_available=True, pure_python=True)


def downloads(monthly: int) -> DownloadStats:
    return DownloadStats(monthly=monthly)


def test_healthy_package_scores_100():
    result = score(overview(), healthy_compat(), downloads(50_000), now=NOW)

    assert result.score == 100
    assert result.rating == Rating.EXCELLENT
    assert result.warnings == []
    assert result.recommendations == []


def test_scoring_is_deterministic():
    args = (overview(200, maintainers=1), healthy_compat(), downloads(500))

    first = score(*args, now=NOW)
    second = score(*args, now=NOW)

    assert first == second


@pytest.mark.parametrize(
    "days, points",
    [(0, 25), (90, 25), (91, 20), (180, 20), (181, 15), (365, 15), (366, 5), (2000, 5)],
)
def test_recency_steps(days, points):
    result = score(overview(days), healthy_compat(), downloads(50_000), now=NOW)

    assert result.breakdown.recency == points


def test_stale_release_warns_and_recommends():
    result = score(overview(400), healthy_compat(), downloads(50_000), now=NOW)

    assert "No releases in over a year" in result.warnings
    assert result.recommendations


def test_six_month_gap_warns():
    result = score(overview(200), healthy_compat(), downloads(50_000), now=NOW)

    assert result.warnings == ["No releases in the last 6 months"]


def test_unknown_release_date_counts_as_a_year_old():
    result = score(overview(None), healthy_compat(), downloads(50_000), now=NOW)

    assert result.breakdown.recency == 15
    assert result.warnings == ["Release date unknown"]


def test_naive_release_date_is_treated_as_utc():
    naive = overview(10).model_copy(update={"last_release_date": datetime(2024, 5, 22)})

    assert score(naive, healthy_compat(), downloads(50_000), now=NOW).breakdown.recency == 25


@pytest.mark.parametrize(
    "maintainers, points, warning",
    [(0, 5, "No maintainers listed"), (1, 15, "Single maintainer - bus factor risk"), (2, 20, None)],
)
def test_maintenance(maintainers, points, warning):
    result = score(overview(maintainers=maintainers), healthy_compat(), downloads(50_000), now=NOW)

    assert result.breakdown.maintenance == points
    if warning:
        assert warning in result.warnings


@pytest.mark.parametrize(
    "compat, points, warning",
    [
        (CompatibilityMatrix(source_only=True), 10, "Source-only distribution - requires build tools"),
        (CompatibilityMatrix(python_versions=["3.12"]), 15, "No wheels available"),
        (CompatibilityMatrix(wheels_available=True), 20, "Python version compatibility unclear"),
    ],
)
def test_compatibility(compat, points, warning):
    result = score(overview(), compat, downloads(50_000), now=NOW)

    assert result.breakdown.compatibility == points
    assert warning in result.warnings


@pytest.mark.parametrize(
    "monthly, points",
    [(0, 5), (99, 5), (100, 10), (999, 10), (1_000, 15), (9_999, 15), (10_000, 20)],
)
def test_popularity_steps(monthly, points):
    result = score(overview(), healthy_compat(), downloads(monthly), now=NOW)

    assert result.breakdown.popularity == points
    assert ("Very low download count" in result.warnings) is (monthly < 100)


def test_missing_downloads_count_as_zero():
    result = score(overview(), healthy_compat(), None, now=NOW)

    assert result.breakdown.popularity == 5


def test_yanked_release_costs_stability():
    result = score(overview(yanked=True), healthy_compat(), downloads(50_000), now=NOW)

    assert result.breakdown.stability == 0
    assert result.score == 90
    assert "Latest version has been yanked" in result.warnings
    assert "Do not use this version - check for security issues" in result.recommendations


@pytest.mark.parametrize(
    "total, rating",
    [(100, Rating.EXCELLENT), (85, Rating.EXCELLENT), (84, Rating.GOOD), (70, Rating.GOOD),
     (69, Rating.FAIR), (50, Rating.FAIR), (49, Rating.POOR), (0, Rating.POOR)],
)
def test_rating_thresholds(total, rating):
    assert HealthScorer()._rating(total) == rating


def test_worst_case_is_poor():
    result = score(overview(1000, maintainers=0, yanked=True), CompatibilityMatrix(source_only=True), None, now=NOW)

    assert result.score == 5 + 5 + 10 + 5 + 0
    assert result.rating == Rating.POOR
    assert len(result.warnings) == 5
