"""Tests for repository layout resolution."""

import pytest

from svhist.config.config import LayoutConfig
from svhist.source.layout import LayoutError, LayoutResolver, Role, RoleKind, compile_patterns


@pytest.fixture
def resolver() -> LayoutResolver:
    return LayoutResolver(
        LayoutConfig(trunk="trunk", branches=["branches", "branches/release"], tags=["tags"])
    )


LISTINGS = {
    "/branches": ["feature-a", "feature-b", "release", "bugfix"],
    "/branches/release": ["1.0", "2.0"],
    "/tags": ["v1.0", "v2.0"],
}


class TestClassify:
    """Tests for LayoutResolver.classify."""

    def test_trunk(self, resolver):
        assert resolver.classify("/trunk/src/main.c") == Role(RoleKind.TRUNK)
        assert resolver.classify("trunk") == Role(RoleKind.TRUNK)

    def test_branch(self, resolver):
        assert resolver.classify("/branches/feature-a/src") == Role(
            RoleKind.BRANCH, "feature-a", "/branches"
        )

    def test_nested_prefix_wins(self, resolver):
        assert resolver.classify("/branches/release/2.0/src") == Role(
            RoleKind.BRANCH, "2.0", "/branches/release"
        )

    def test_tag(self, resolver):
        assert resolver.classify("/tags/v1.0/README").kind is RoleKind.TAG

    def test_unknown(self, resolver):
        assert resolver.classify("/vendor/lib").kind is RoleKind.UNKNOWN
        assert resolver.classify("/trunkish/x").kind is RoleKind.UNKNOWN


class TestPaths:
    """Tests for root prefixes and relative paths."""

    def test_root_prefix(self, resolver):
        assert resolver.root_prefix(Role(RoleKind.TRUNK)) == "/trunk"
        assert resolver.root_prefix(Role(RoleKind.TAG, "v1.0", "/tags")) == "/tags/v1.0"

    def test_root_prefix_unknown(self, resolver):
        with pytest.raises(LayoutError):
            resolver.root_prefix(Role(RoleKind.UNKNOWN))

    def test_relative_path(self, resolver):
        assert resolver.relative_path("/branches/release/1.0/src/a.c") == "src/a.c"
        assert resolver.relative_path("/trunk/src/a.c") == "src/a.c"

    def test_relative_path_outside_layout(self, resolver):
        with pytest.raises(LayoutError):
            resolver.relative_path("/vendor/lib/a.c")


class TestDiscoverRoots:
    """Tests for LayoutResolver.discover_roots."""

    def test_trunk_only_by_default(self, resolver):
        assert resolver.discover_roots(LISTINGS.get) == ["/trunk"]

    def test_all_branches_skip_nested_prefix(self, resolver):
        roots = resolver.discover_roots(LISTINGS.get, all_branches=True)

        assert roots == [
            "/trunk",
            "/branches/feature-a",
            "/branches/feature-b",
            "/branches/bugfix",
            "/branches/release/1.0",
            "/branches/release/2.0",
        ]

    def test_patterns(self, resolver):
        roots = resolver.discover_roots(
            LISTINGS.get,
            branch_patterns=compile_patterns(["feature-b$", r"release/2"]),
            tag_patterns=compile_patterns([r"v1\."]),
        )

        assert roots == ["/trunk", "/branches/feature-b", "/branches/release/2.0", "/tags/v1.0"]

    def test_all_tags(self, resolver):
        roots = resolver.discover_roots(LISTINGS.get, all_tags=True)

        assert roots == ["/trunk", "/tags/v1.0", "/tags/v2.0"]


def test_invalid_pattern():
    with pytest.raises(LayoutError):
        compile_patterns(["feature-("])
