"""命名空间有序解析测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgshelf.core.exceptions import InvalidSpecError
from pkgshelf.core.models import Registry, VersionEntry
from pkgshelf.core.resolver import (
    PackageResolver,
    PackageSpec,
    format_resolution,
    parse_spec,
    parse_specs,
)
from pkgshelf.core.store import PackageStore


def _entry(sig: str) -> VersionEntry:
    return VersionEntry(signature=sig, published="2026-01-01T00:00:00+00:00", files=1)


@pytest.fixture()
def registry() -> Registry:
    reg = Registry.empty()
    reg.add_version("global", "@scope/lib", "1.0.0", _entry("1" * 64))
    reg.add_version("team-a", "@scope/lib", "1.0.0", _entry("a" * 64))
    reg.add_version("team-b", "@scope/lib", "1.0.0", _entry("b" * 64))
    reg.add_version("team-b", "@scope/lib", "2.0.0", _entry("2" * 64))
    reg.add_version("team-a", "left-pad", "1.3.0", _entry("c" * 64))
    return reg


class TestParseSpec:
    @pytest.mark.parametrize(
        ("text", "name", "version"),
        [
            ("lodash@4.17.21", "lodash", "4.17.21"),
            ("@scope/lib@1.0.0", "@scope/lib", "1.0.0"),
            ("  pkg@1.0.0-beta.1 ", "pkg", "1.0.0-beta.1"),
        ],
    )
    def test_valid(self, text: str, name: str, version: str) -> None:
        assert parse_spec(text) == PackageSpec(name, version)

    @pytest.mark.parametrize("text", ["lodash", "@scope/lib", "@1.0.0", "lib@", ""])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(InvalidSpecError):
            parse_spec(text)

    def test_batch_drops_malformed(self) -> None:
        parsed = parse_specs(["a@1.0.0", "bad", "@s/b@2.0.0"])
        assert [str(s) for s in parsed] == ["a@1.0.0", "@s/b@2.0.0"]


class TestResolve:
    def test_first_namespace_wins(self, registry: Registry) -> None:
        resolver = PackageResolver()
        r = resolver.resolve("@scope/lib", "1.0.0", ["team-b", "team-a", "global"], registry)
        assert r.found
        assert r.namespace == "team-b"
        assert r.signature == "b" * 64

    def test_order_is_deterministic(self, registry: Registry) -> None:
        resolver = PackageResolver()
        order = ["team-a", "team-b"]
        results = {resolver.resolve("@scope/lib", "1.0.0", order, registry).namespace for _ in range(10)}
        assert results == {"team-a"}
        assert resolver.resolve("@scope/lib", "1.0.0", order[::-1], registry).namespace == "team-b"

    def test_skips_namespaces_without_exact_version(self, registry: Registry) -> None:
        r = PackageResolver().resolve("@scope/lib", "2.0.0", ["team-a", "global", "team-b"], registry)
        assert r.namespace == "team-b"
        assert r.searched == ["team-a", "global", "team-b"]

    def test_exact_version_only(self, registry: Registry) -> None:
        r = PackageResolver().resolve("@scope/lib", "1.0.1", ["global", "team-a", "team-b"], registry)
        assert not r.found
        assert r.namespace is None
        assert r.searched == ["global", "team-a", "team-b"]

    def test_default_searches_global_only(self, registry: Registry) -> None:
        resolver = PackageResolver()
        assert resolver.resolve("@scope/lib", "1.0.0", [], registry).namespace == "global"
        miss = resolver.resolve("left-pad", "1.3.0", None, registry)
        assert not miss.found
        assert miss.searched == ["global"]

    def test_unknown_namespace_is_a_miss(self, registry: Registry) -> None:
        r = PackageResolver().resolve("@scope/lib", "1.0.0", ["nope"], registry)
        assert not r.found

    def test_path_computed_from_store(self, tmp_path: Path, registry: Registry) -> None:
        store = PackageStore(tmp_path)
        r = PackageResolver(store).resolve("@scope/lib", "1.0.0", ["team-a"], registry)
        assert r.path == store.version_path("team-a", "@scope/lib", "1.0.0")

    def test_batch_keeps_order_and_continues_past_miss(self, registry: Registry) -> None:
        specs = parse_specs(["left-pad@1.3.0", "ghost@0.0.1", "@scope/lib@2.0.0"])
        results = PackageResolver().resolve_many(specs, ["team-a", "team-b"], registry)
        assert [r.spec for r in results] == ["left-pad@1.3.0", "ghost@0.0.1", "@scope/lib@2.0.0"]
        assert [r.found for r in results] == [True, False, True]

    def test_helpers(self, registry: Registry) -> None:
        resolver = PackageResolver()
        assert resolver.find_in_namespace("left-pad", "1.3.0", "team-a", registry).found
        assert not resolver.exists_in_namespaces("left-pad", "1.3.0", ["global"], registry)
        assert PackageResolver.all_versions("@scope/lib", None, registry) == [
            ("global", "1.0.0", "1" * 64),
            ("team-a", "1.0.0", "a" * 64),
            ("team-b", "1.0.0", "b" * 64),
            ("team-b", "2.0.0", "2" * 64),
        ]


class TestFormat:
    def test_hit_and_miss(self, registry: Registry) -> None:
        resolver = PackageResolver()
        hit = resolver.resolve("@scope/lib", "1.0.0", ["team-a"], registry)
        assert format_resolution(hit) == f"✓ @scope/lib@1.0.0 → team-a ({'a' * 8})"
        miss = resolver.resolve("x", "1.0.0", ["global", "team-a"], registry)
        assert format_resolution(miss) == "✗ x@1.0.0 not found (searched: global, team-a)"
