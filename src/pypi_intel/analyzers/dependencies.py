"""Two-level dependency tree resolution."""

import asyncio
import logging
import re
from dataclasses import dataclass, field

from packaging.requirements import InvalidRequirement, Requirement

from pypi_intel.adapters.base import PartialResolutionError, PyPIIntelError
from pypi_intel.adapters.pypi import PyPIClient, normalize_name
from pypi_intel.models.schemas import DependencyNode, DependencyStats, PackageRecord

logger = logging.getLogger(__name__)

# Lenient form for strings packaging rejects, e.g. "foo (>=1.0) ; os_name=='nt'"
LEGACY_REQUIREMENT = re.compile(
    r"^\s*(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*"
    r"(?:\[(?P<extras>[^\]]*)\])?\s*"
    r"\(?(?P<specifier>[^;()]*)\)?\s*"
    r"(?:;\s*(?P<marker>.*))?$"
)


@dataclass
class ParsedRequirement:
    """A single ``requires_dist`` entry."""

    name: str
    specifier: str = ""
    extras: list[str] = field(default_factory=list)
    is_optional: bool = False
    environment: str | None = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)


def parse_requirement(spec: str) -> ParsedRequirement | None:
    """Parse a PEP 508 requirement string.

    Returns None when the string has no recognisable package name.
    ``is_optional`` is set when the marker refers to an extra.
    """
    try:
        req = Requirement(spec)
    except InvalidRequirement:
        match = LEGACY_REQUIREMENT.match(spec)
        if not match:
            logger.debug(f"Unparseable requirement: {spec!r}")
            return None
        extras = [e.strip() for e in (match.group("extras") or "").split(",") if e.strip()]
        marker = (match.group("marker") or "").strip() or None
        return ParsedRequirement(
            name=match.group("name"),
            specifier=match.group("specifier").strip().replace(" ", ""),
            extras=extras,
            is_optional=bool(marker and "extra" in marker),
            environment=marker,
        )

    marker = str(req.marker) if req.marker else None
    return ParsedRequirement(
        name=req.name,
        specifier=str(req.specifier),
        extras=sorted(req.extras),
        is_optional=bool(marker and "extra" in marker),
        environment=marker,
    )


def parse_requirements(specs: list[str]) -> list[ParsedRequirement]:
    """Parse and de-duplicate by normalized name; the first declaration wins."""
    parsed: list[ParsedRequirement] = []
    seen: set[str] = set()
    for spec in specs:
        req = parse_requirement(spec)
        if req is None or req.key in seen:
            continue
        seen.add(req.key)
        parsed.append(req)
    return parsed


def _to_node(req: ParsedRequirement) -> DependencyNode:
    return DependencyNode(
        name=req.name,
        specifier=req.specifier,
        is_optional=req.is_optional,
        extras=req.extras,
        environment=req.environment,
    )


class DependencyResolver:
    """Builds a depth-2 dependency forest from PyPI metadata.

    The root package is fetched first and its failure propagates. Each
    direct dependency is then fetched concurrently to learn its latest
    version and its own requirements; a failed lookup is recorded on that
    node and does not affect its siblings. Grandchildren are listed but
    never fetched.
    """

    def __init__(self, client: PyPIClient, max_direct: int = 20, max_children: int = 5) -> None:
        self._client = client
        self.max_direct = max_direct
        self.max_children = max_children

    async def _fetch(self, name: str, version: str | None = None) -> PackageRecord:
        if version:
            return await self._client.fetch_package_version(name, version)
        return await self._client.fetch_package_info(name)

    async def resolve(
        self,
        name: str,
        version: str | None = None,
        include_optional: bool = False,
    ) -> list[DependencyNode]:
        """Resolve the dependency tree of a package.

        Args:
            name: Root package name.
            version: Root version. Defaults to the latest release.
            include_optional: Also list extras-only requirements of the
                direct dependencies. Direct extras-only requirements are
                always listed, flagged ``is_optional``.

        Returns:
            Direct dependencies in declaration order.
        """
        record = await self._fetch(name, version)
        requirements = parse_requirements(record.info.requires_dist)[: self.max_direct]
        nodes = [_to_node(req) for req in requirements]

        logger.debug(f"Resolving {len(nodes)} direct dependencies of {name}")
        async with asyncio.TaskGroup() as tg:
            for node in nodes:
                tg.create_task(self._resolve_child(node, include_optional))
        return nodes

    async def _resolve_child(self, node: DependencyNode, include_optional: bool) -> None:
        try:
            record = await self._fetch(node.name)
        except PyPIIntelError as e:
            error = PartialResolutionError(node.name, e)
            logger.warning(str(error))
            node.error = str(error)
            node.children = []
            return

        node.version = record.info.version
        children = parse_requirements(record.info.requires_dist)
        if not include_optional:
            children = [req for req in children if not req.is_optional]
        node.children = [_to_node(req) for req in children[: self.max_children]]


def dependency_stats(tree: list[DependencyNode]) -> DependencyStats:
    """Summarise a dependency forest."""
    names: set[str] = set()
    transitive = optional = failed = 0

    for node in tree:
        names.add(normalize_name(node.name))
        optional += node.is_optional
        failed += node.error is not None
        for child in node.children:
            names.add(normalize_name(child.name))
            transitive += 1
            optional += child.is_optional

    return DependencyStats(
        direct=len(tree),
        transitive=transitive,
        optional=optional,
        failed=failed,
        unique=len(names),
    )
