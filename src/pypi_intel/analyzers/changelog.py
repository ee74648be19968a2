"""Changelog parsing and release-note classification.

Changelogs in the wild are loosely structured Markdown, RST or plain text.
Parsing is a line-oriented state machine: a version header opens an entry,
``-`` or ``*`` bullets inside an entry become changes, everything else is
ignored. Entries are then flagged breaking/security/feature/fix by keyword
heuristics. The keyword tables below are best-effort and tuned by fixtures
in ``tests/test_changelog.py``; change them together.
"""

import re

from packaging.version import InvalidVersion, Version

from pypi_intel.models.schemas import (
    ChangelogData,
    ChangelogEntry,
    ChangelogSource,
    ReleaseFile,
    UpdateRecommendation,
)

VERSION_HEADER = re.compile(
    r"^(?:#{1,3}\s*)?(?:version\s*)?v?(\d+\.\d+(?:\.\d+)?(?:[.-]\w+)?)"
    r"(?:\s*[(\[]?([^)\]]*)[)\]]?)?",
    re.IGNORECASE,
)

# Per-bullet patterns
BREAKING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"breaking\s+change",
        r"backwards?\s+incompatible",
        r"deprecated",
        r"removed\s+support",
        r"dropped\s+support",
        r"no\s+longer\s+support",
        r"api\s+change",
        r"signature\s+change",
        r"incompatible",
    )
]
SECURITY_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"security\s+fix",
        r"cve-\d+",
        r"vulnerability",
        r"exploit",
        r"xss",
        r"csrf",
        r"injection",
        r"buffer\s+overflow",
    )
]
FEATURE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"^added\b", r"^new\b", r"^feature", r"^implement", r"^support", r"^introduce")
]
FIX_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^fixed\b",
        r"^fix\b",
        r"^bug\s*fix",
        r"^resolved\b",
        r"^corrected\b",
        r"^repair",
        r"^patch",
    )
]

# Patterns over the whole entry's joined text
BREAKING_TEXT = re.compile(r"breaking|incompatible|deprecated|removed|dropped", re.IGNORECASE)
SECURITY_TEXT = re.compile(r"security|vulnerabilit|\bcve\b|cve-\d+|exploit", re.IGNORECASE)
FEATURE_TEXT = re.compile(r"feature|added|\bnew\b|support|implement", re.IGNORECASE)
FIX_TEXT = re.compile(r"fix|bug|issue|correct|repair", re.IGNORECASE)

DATE_PATTERNS = [
    re.compile(r"(\d{4}-\d{2}-\d{2})"),  # 2023-01-15
    re.compile(r"(\d{4}/\d{2}/\d{2})"),  # 2023/01/15
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),  # 01/15/2023
    re.compile(r"(\d{1,2}-[A-Za-z]{3}-\d{4})"),  # 15-Jan-2023
    re.compile(r"([A-Za-z]+ \d{1,2},? \d{4})"),  # January 15, 2023
]


def _any(patterns: list[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def classify_entry(version: str, date: str | None, changes: list[str]) -> ChangelogEntry:
    """Build an entry with its classification flags set.

    Flags are not mutually exclusive.
    """
    joined = " ".join(changes)
    return ChangelogEntry(
        version=version,
        date=date,
        changes=changes,
        is_breaking=any(_any(BREAKING_PATTERNS, c) for c in changes) or bool(BREAKING_TEXT.search(joined)),
        is_security=any(_any(SECURITY_PATTERNS, c) for c in changes) or bool(SECURITY_TEXT.search(joined)),
        is_feature=any(_any(FEATURE_PATTERNS, c) for c in changes) or bool(FEATURE_TEXT.search(joined)),
        is_fix=any(_any(FIX_PATTERNS, c) for c in changes) or bool(FIX_TEXT.search(joined)),
    )


def parse_date(text: str | None) -> str | None:
    """Pull a date out of the text following a version header.

    Unrecognised text is returned stripped; empty text gives None.
    """
    if not text:
        return None
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return text.strip() or None


def parse_changelog(text: str) -> list[ChangelogEntry]:
    """Parse changelog text into entries, in document order."""
    entries: list[ChangelogEntry] = []
    current: tuple[str, str | None] | None = None
    changes: list[str] = []

    for line in text.splitlines():
        match = VERSION_HEADER.match(line)
        if match:
            if current:
                entries.append(classify_entry(current[0], current[1], changes))
            current = (match.group(1), parse_date(match.group(2)))
            changes = []
            continue

        stripped = line.strip()
        if current and stripped[:1] in ("-", "*"):
            change = stripped[1:].strip()
            if change:
                changes.append(change)

    if current:
        entries.append(classify_entry(current[0], current[1], changes))
    return entries


def is_valid_version(version: str) -> bool:
    try:
        Version(version)
    except InvalidVersion:
        return False
    return True


def _release_date(files: list[ReleaseFile]) -> str | None:
    for f in files:
        if f.uploaded_at:
            return f.uploaded_at.date().isoformat()
    return None


def generate_fallback_changelog(
    releases: dict[str, list[ReleaseFile]],
    current_version: str,
    limit: int = 10,
) -> ChangelogData:
    """Synthesize a changelog from release upload timestamps.

    Used when no changelog file can be found. Entries are newest first,
    exclude ``current_version`` and carry no classification flags.
    """
    if not releases:
        return ChangelogData(source=ChangelogSource.FALLBACK)

    versions = [v for v in releases if v != current_version]
    valid = sorted((v for v in versions if is_valid_version(v)), key=Version, reverse=True)
    invalid = [v for v in versions if not is_valid_version(v)]

    entries = [
        ChangelogEntry(
            version=version,
            date=_release_date(releases[version]),
            changes=[f"Version {version} released"],
        )
        for version in (valid + invalid)[:limit]
    ]
    return ChangelogData(entries=entries, source=ChangelogSource.PYPI)


def _release_parts(version: str) -> tuple[int, int]:
    try:
        release = Version(version).release
    except InvalidVersion:
        numbers = [int(p) if p.isdigit() else 0 for p in re.split(r"[.-]", version)]
        release = tuple(numbers)
    major = release[0] if len(release) > 0 else 0
    minor = release[1] if len(release) > 1 else 0
    return major, minor


def _between(version: str, current: str, latest: str) -> bool:
    try:
        return Version(current) < Version(version) <= Version(latest)
    except InvalidVersion:
        return False


def calculate_update_recommendation(
    current_version: str,
    latest_version: str,
    changelog: ChangelogData,
) -> UpdateRecommendation:
    """Summarise what upgrading from ``current_version`` to ``latest_version`` brings.

    Only entries newer than the current version and not newer than the
    latest are considered. ``risk_score`` rises with breaking changes,
    features and version jumps, and falls with security and bug fixes.
    """
    relevant = [e for e in changelog.entries if _between(e.version, current_version, latest_version)]

    breaking = any(e.is_breaking for e in relevant)
    security = any(e.is_security for e in relevant)
    features = any(e.is_feature for e in relevant)
    fixes = any(e.is_fix for e in relevant)

    risk = 0
    if breaking:
        risk += 50
    if security:
        risk -= 30
    if features:
        risk += 10
    if fixes:
        risk -= 10

    current_major, current_minor = _release_parts(current_version)
    latest_major, latest_minor = _release_parts(latest_version)
    if latest_major > current_major:
        risk += 30 * (latest_major - current_major)
    if latest_minor - current_minor > 5:
        risk += 10

    return UpdateRecommendation(
        breaking_changes=breaking,
        security_fixes=security,
        new_features=features,
        bug_fixes=fixes,
        risk_score=max(0, min(100, risk)),
    )

