import asyncio

import httpx
import pytest

from conftest import json_response, package_payload
from pypi_intel.adapters.base import NotFoundError
from pypi_intel.adapters.pypi import PyPIClient
from pypi_intel.analyzers.dependencies import (
    DependencyResolver,
    dependency_stats,
    parse_requirement,
    parse_requirements,
)


def registry(packages: dict[str, dict], failing: set[str] = frozenset()):
    """Mock PyPI serving ``packages`` by normalized name."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.split("/")[2]
        calls.append(name)
        if name in failing:
            return httpx.Response(500)
        if name not in packages:
            return httpx.Response(404)
        return json_response(packages[name])

    handler.calls = calls
    return handler


def make_resolver(make_fetcher, cache, settings, handler, **kwargs) -> DependencyResolver:
    client = PyPIClient(make_fetcher(handler, max_attempts=1), cache=cache, settings=settings)
    return DependencyResolver(client, **kwargs)


@pytest.mark.parametrize(
    "spec, name, specifier, extras, optional, environment",
    [
        ("requests>=2.0", "requests", ">=2.0", [], False, None),
        ("urllib3 (>=1.26)", "urllib3", ">=1.26", [], False, None),
        ("numpy[extra,dev]>=1.0", "numpy", ">=1.0", ["dev", "extra"], False, None),
        ("pytest; extra == 'test'", "pytest", "", [], True, 'extra == "test"'),
        (
            "importlib-metadata; python_version < '3.8'",
            "importlib-metadata",
            "",
            [],
            False,
            'python_version < "3.8"',
        ),
    ],
)
def test_parse_requirement(spec, name, specifier, extras, optional, environment):
    req = parse_requirement(spec)

    assert req.name == name
    assert req.specifier == specifier
    assert req.extras == extras
    assert req.is_optional is optional
    assert req.environment == environment


def test_parse_requirement_lenient_fallback():
    req = parse_requirement("weird-pkg (>= 1.0 ) ; os_name == 'nt' and extra = 'win'")

    assert req.name == "weird-pkg"
    assert req.specifier == ">=1.0"
    assert req.is_optional is True


def test_parse_requirement_rejects_garbage():
    assert parse_requirement("!!!") is None


def test_parse_requirements_dedupes_first_wins():
    reqs = parse_requirements(["Foo>=1", "bar", "foo<3", "foo_bar", "Bar[x]"])

    assert [(r.name, r.specifier) for r in reqs] == [("Foo", ">=1"), ("bar", ""), ("foo_bar", "")]


def test_resolve_builds_depth_two_tree(make_fetcher, cache, settings):
    handler = registry({
        "root": package_payload("root", requires_dist=["a>=1", "b", "A<5", "c; extra == 'dev'"]),
        "a": package_payload("a", "1.2", requires_dist=["x", "y", "x>=2", "z; extra == 'fast'"]),
        "b": package_payload("b", "3.0"),
        "c": package_payload("c", "0.1"),
    })
    resolver = make_resolver(make_fetcher, cache, settings, handler)

    tree = asyncio.run(resolver.resolve("root"))

    assert [n.name for n in tree] == ["a", "b", "c"]
    a, b, c = tree
    assert a.version == "1.2"
    assert [child.name for child in a.children] == ["x", "y"]
    assert all(child.version is None and child.children == [] for child in a.children)
    assert b.version == "3.0" and b.children == []
    assert c.is_optional is True
    # grandchildren are listed, never fetched
    assert sorted(handler.calls) == ["a", "b", "c", "root"]


def test_resolve_includes_optional_grandchildren_on_request(make_fetcher, cache, settings):
    handler = registry({
        "root": package_payload("root", requires_dist=["a"]),
        "a": package_payload("a", requires_dist=["x", "z; extra == 'fast'"]),
    })
    resolver = make_resolver(make_fetcher, cache, settings, handler)

    tree = asyncio.run(resolver.resolve("root", include_optional=True))

    assert [child.name for child in tree[0].children] == ["x", "z"]
    assert tree[0].children[1].is_optional is True


def test_child_failure_is_isolated(make_fetcher, cache, settings):
    handler = registry(
        {
            "root": package_payload("root", requires_dist=["good", "broken", "missing"]),
            "good": package_payload("good", "1.0", requires_dist=["dep"]),
        },
        failing={"broken"},
    )
    resolver = make_resolver(make_fetcher, cache, settings, handler)

    tree = asyncio.run(resolver.resolve("root"))

    good, broken, missing = tree
    assert good.error is None
    assert [c.name for c in good.children] == ["dep"]
    assert broken.error is not None and "broken" in broken.error
    assert broken.children == []
    assert missing.error is not None
    assert missing.version is None


def test_root_failure_propagates(make_fetcher, cache, settings):
    resolver = make_resolver(make_fetcher, cache, settings, registry({}))

    with pytest.raises(NotFoundError):
        asyncio.run(resolver.resolve("nope"))


def test_fan_out_caps(make_fetcher, cache, settings):
    direct = [f"dep{i}" for i in range(30)]
    packages = {"root": package_payload("root", requires_dist=direct)}
    for name in direct:
        packages[name] = package_payload(name, requires_dist=[f"{name}-child{j}" for j in range(8)])
    resolver = make_resolver(make_fetcher, cache, settings, registry(packages))

    tree = asyncio.run(resolver.resolve("root"))

    assert len(tree) == 20
    assert [n.name for n in tree] == direct[:20]
    assert all(len(n.children) == 5 for n in tree)


def test_resolve_specific_version(make_fetcher, cache, settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/pypi/root/1.0/json":
            return json_response(package_payload("root", "1.0", requires_dist=["a"]))
        return json_response(package_payload("a", "2.0"))

    resolver = make_resolver(make_fetcher, cache, settings, handler)
    tree = asyncio.run(resolver.resolve("root", version="1.0"))

    assert seen[0] == "/pypi/root/1.0/json"
    assert tree[0].version == "2.0"


def test_dependency_stats(make_fetcher, cache, settings):
    handler = registry(
        {
            "root": package_payload("root", requires_dist=["a", "b", "c; extra == 'x'"]),
            "a": package_payload("a", requires_dist=["b", "d"]),
            "c": package_payload("c"),
        },
        failing={"b"},
    )
    resolver = make_resolver(make_fetcher, cache, settings, handler)

    tree = asyncio.run(resolver.resolve("root"))
    stats = dependency_stats(tree)

    assert stats.direct == 3
    assert stats.transitive == 2
    assert stats.optional == 1
    assert stats.failed == 1
    assert stats.unique == 4
