"""Changelog fetcher backed by raw GitHub content."""

import html
import logging
import re

from pypi_intel.adapters.base import FetchError, NotFoundError, ResilientFetcher
from pypi_intel.analyzers.changelog import generate_fallback_changelog, parse_changelog
from pypi_intel.cache import MISSING, ResponseCache, default_cache
from pypi_intel.config import Settings
from pypi_intel.models.schemas import ChangelogData, ChangelogSource, PackageRecord
from pypi_intel.monitoring import MetricsCollector

logger = logging.getLogger(__name__)

# https://github.com/owner/repo
# https://github.com/owner/repo.git
# https://github.com/owner/repo/tree/main/subpath
# git@github.com:owner/repo.git
GITHUB_PATTERNS = [
    re.compile(r"(?:https?://)?(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+)"),
    re.compile(r"git@github\.com:([^/\s]+)/([^/\s#?]+)"),
]

# project_urls keys checked first, in order
SOURCE_URL_KEYS = ["Source Code", "Source", "Homepage", "Repository", "Code"]
CHANGELOG_URL_KEYS = [
    "Changelog",
    "CHANGELOG",
    "Change Log",
    "Changes",
    "CHANGES",
    "History",
    "HISTORY",
    "News",
    "NEWS",
    "Releases",
    "RELEASES",
]
CHANGELOG_KEY_PATTERN = re.compile(r"changelog|changes|history|news|releases", re.IGNORECASE)

# https://github.com/owner/repo/blob/branch/path/to/CHANGELOG.md
GITHUB_BLOB_PATTERN = re.compile(r"github\.com/([^/]+)/([^/]+)/blob/([^/]+)/(.+)")

HTML_DROP = re.compile(r"<(script|style)\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
HTML_ITEM = re.compile(r"<li\b[^>]*>", re.IGNORECASE)
HTML_TAG = re.compile(r"<[^>]+>")


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Split a GitHub URL into (owner, repo)."""
    if not url:
        return None
    for pattern in GITHUB_PATTERNS:
        match = pattern.search(url)
        if match:
            repo = match.group(2)
            if repo.endswith(".git"):
                repo = repo[: -len(".git")]
            if repo:
                return match.group(1), repo
    return None


def extract_github_url(project_urls: dict[str, str]) -> str | None:
    """Find the package's GitHub repository among its project URLs.

    Sponsor links are skipped.
    """
    for key in SOURCE_URL_KEYS:
        url = project_urls.get(key)
        if url and "github.com" in url:
            return url
    for url in project_urls.values():
        if url and "github.com" in url and "github.com/sponsors" not in url:
            return url
    return None


def extract_changelog_url(project_urls: dict[str, str]) -> str | None:
    """Find an explicit changelog link among the project URLs."""
    for key in CHANGELOG_URL_KEYS:
        if project_urls.get(key):
            return project_urls[key]
    for key, url in project_urls.items():
        if url and CHANGELOG_KEY_PATTERN.search(key):
            return url
    return None


def html_to_text(page: str) -> str:
    """Reduce an HTML changelog page to lines the changelog parser understands."""
    text = HTML_DROP.sub("", page)
    text = HTML_ITEM.sub("\n- ", text)
    text = HTML_TAG.sub("\n", text)
    text = html.unescape(text)
    lines = (re.sub(r"[ \t]+", " ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


class ChangelogFetcher:
    """Fetches and parses a package's changelog.

    An explicit changelog link in the project URLs is tried first. Otherwise
    well-known changelog filenames are tried on the repository's ``main``
    and ``master`` branches via raw.githubusercontent.com. No authentication
    is needed. When no file is found, or the package has no GitHub
    repository, a changelog is synthesized from PyPI release history.
    ``fetch`` never raises.
    """

    CHANGELOG_FILES = [
        "CHANGELOG.md",
        "CHANGELOG.rst",
        "CHANGELOG.txt",
        "CHANGES.md",
        "CHANGES.rst",
        "CHANGES.txt",
        "HISTORY.md",
        "HISTORY.rst",
        "HISTORY.txt",
        "NEWS.md",
        "NEWS.rst",
        "RELEASES.md",
        "CHANGELOG",
        "CHANGES",
        "HISTORY",
    ]
    BRANCHES = ["main", "master"]

    def __init__(
        self,
        fetcher: ResilientFetcher,
        cache: ResponseCache | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache if cache is not None else default_cache()
        self._settings = settings or Settings()
        self._metrics = metrics

    async def fetch_changelog_content(self, owner: str, repo: str) -> str | None:
        """Return the first changelog file found in the repository, or None.

        Raises:
            FetchError: If GitHub fails for a reason other than a missing file.
        """
        cache_key = f"changelog:{owner.lower()}/{repo.lower()}"
        cached = self._cache.get(cache_key)
        if self._metrics:
            self._metrics.record_cache(hit=cached is not MISSING)
        if cached is not MISSING:
            return cached

        for filename in self.CHANGELOG_FILES:
            for branch in self.BRANCHES:
                url = f"{self._settings.github_raw_url}/{owner}/{repo}/{branch}/{filename}"
                try:
                    content = await self._fetcher.get_text(url, headers={"Accept": "text/plain"})
                except NotFoundError:
                    continue
                logger.debug(f"Found changelog at {url}")
                self._cache.set(cache_key, content)
                return content

        # Remember the miss so later lookups skip the search
        self._cache.set(cache_key, None)
        return None

    async def fetch_changelog_from_url(self, url: str) -> str:
        """Download a changelog linked from the project URLs.

        GitHub ``blob`` links are rewritten to raw content and HTML pages
        are reduced to text.

        Raises:
            FetchError: If the URL cannot be fetched.
        """
        cache_key = f"changelog:url:{url}"
        cached = self._cache.get(cache_key)
        if self._metrics:
            self._metrics.record_cache(hit=cached is not MISSING)
        if cached is not MISSING:
            return cached

        match = GITHUB_BLOB_PATTERN.search(url)
        raw_url = url
        if match:
            owner, repo, branch, path = match.groups()
            raw_url = f"{self._settings.github_raw_url}/{owner}/{repo}/{branch}/{path}"

        response = await self._fetcher.request(
            "GET", raw_url, headers={"Accept": "text/plain, text/markdown, text/x-rst, text/html"}
        )
        content = response.text
        if "text/html" in response.headers.get("content-type", ""):
            content = html_to_text(content)
        self._cache.set(cache_key, content)
        return content

    async def fetch(self, record: PackageRecord) -> ChangelogData:
        """Fetch the changelog for a package, falling back to release history."""
        info = record.info
        project_urls = dict(info.project_urls)
        if info.home_page:
            project_urls.setdefault("Homepage", info.home_page)

        changelog_url = extract_changelog_url(project_urls)
        if changelog_url and changelog_url.startswith(("http://", "https://")):
            try:
                entries = parse_changelog(await self.fetch_changelog_from_url(changelog_url))
            except FetchError as e:
                logger.debug(f"Changelog link {changelog_url} failed: {e}")
                entries = []
            if entries:
                return ChangelogData(entries=entries, source=ChangelogSource.GITHUB)

        github_url = extract_github_url(project_urls)
        parsed = parse_github_url(github_url) if github_url else None
        if parsed is None:
            return self._fallback(record, f"No GitHub repository found for {info.name}")

        owner, repo = parsed
        try:
            content = await self.fetch_changelog_content(owner, repo)
        except FetchError as e:
            logger.warning(f"Changelog fetch failed for {owner}/{repo}: {e}")
            return self._fallback(record, str(e))

        if content is None:
            return self._fallback(record, f"No changelog file found in {owner}/{repo}")

        entries = parse_changelog(content)
        if not entries:
            return self._fallback(record, f"Changelog in {owner}/{repo} has no version entries")
        return ChangelogData(entries=entries, source=ChangelogSource.GITHUB)

    def _fallback(self, record: PackageRecord, reason: str) -> ChangelogData:
        logger.debug(f"Using release history as changelog: {reason}")
        if self._metrics:
            self._metrics.record_fallback()
        changelog = generate_fallback_changelog(record.releases, record.info.version)
        return changelog.model_copy(update={"error": reason})
