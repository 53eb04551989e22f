"""Tests for the keyword prompt router."""
from buildguard.models.analysis import BlueprintKind, BuildAnalysis, BuildPass
from buildguard.router import (
    DEFAULT_PROFILE,
    available_build_types,
    is_organic_build_type,
    route_prompt,
    should_use_voxel_sparse,
)


class TestRouteMatching:
    """First matching rule decides kind, build type and profile."""

    def test_house_prompt(self):
        route = route_prompt("A cozy cottage by the lake")
        assert route.build_type == "house"
        assert route.kind == BlueprintKind.OPS_SCRIPT
        assert route.profile_id == "house"
        assert route.confidence == "high"
        assert route.matched_pattern == "cottage"

    def test_treehouse_beats_tree(self):
        """The treehouse rule is listed before the tree rule."""
        assert route_prompt("build me a treehouse").build_type == "treehouse"
        assert route_prompt("a big oak tree").build_type == "tree"

    def test_pixel_art_is_voxel_sparse(self):
        route = route_prompt("pixel art of a creeper")
        assert route.kind == BlueprintKind.VOXEL_SPARSE
        assert route.build_type == "pixel_art"

    def test_tower_routes_to_infrastructure(self):
        route = route_prompt("a spooky haunted tower")
        assert route.build_type == "infrastructure"
        assert route.style == "gothic"

    def test_modern_house_keeps_house_rule_and_modern_style(self):
        route = route_prompt("modern house with big windows")
        assert route.build_type == "house"
        assert route.style == "modern"

    def test_case_insensitive(self):
        assert route_prompt("MEDIEVAL CASTLE").build_type == "castle"


class TestPassInference:

    def test_rule_passes_are_kept(self):
        route = route_prompt("a small house")
        assert route.passes == [BuildPass.SHELL.value, BuildPass.DETAIL.value]

    def test_keywords_add_passes(self):
        route = route_prompt("a house with a garden and a furnished kitchen")
        assert BuildPass.INTERIOR.value in route.passes
        assert BuildPass.LANDSCAPE.value in route.passes

    def test_passes_are_not_duplicated(self):
        route = route_prompt("a detailed castle")
        assert route.passes.count(BuildPass.DETAIL.value) == 1


class TestDefaultRoute:
    """Unmatched or empty prompts get the generic route with zero confidence."""

    def test_empty_prompt(self):
        for prompt in ("", "   ", None):
            route = route_prompt(prompt)
            assert route.build_type == "generic"
            assert route.profile_id == DEFAULT_PROFILE
            assert route.confidence == "none"

    def test_unmatched_prompt(self):
        route = route_prompt("xyzzy")
        assert route.build_type == "generic"
        assert route.kind == BlueprintKind.OPS_SCRIPT
        assert route.matched_pattern is None
        assert route.passes == [BuildPass.SHELL.value]

    def test_non_string_prompt_never_raises(self):
        assert route_prompt(42).build_type == "generic"


class TestHelpers:

    def test_voxel_build_types(self):
        assert should_use_voxel_sparse("statue")
        assert not should_use_voxel_sparse("house")

    def test_organic_build_types(self):
        assert is_organic_build_type("tree")
        assert not is_organic_build_type("castle")

    def test_available_build_types_are_unique(self):
        types = available_build_types()
        assert len(types) == len(set(types))
        assert types[-1] == "generic"

    def test_analysis_from_route(self):
        route = route_prompt("a stone castle with towers")
        analysis = BuildAnalysis.from_route("a stone castle with towers", route, features=["towers"])
        assert analysis.build_type == route.build_type == "castle"
        assert analysis.route is route
        assert analysis.features == ["towers"]
