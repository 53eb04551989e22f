"""Tests for the occupancy grid and connectivity analysis."""
import pytest

from buildguard.config import SpatialConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.issues import IssueCode, Severity
from buildguard.validators.spatial_validator import (
    SpatialValidator,
    build_occupancy_grid,
    find_components,
    format_connectivity_issues_for_repair,
    structural_tags,
)


def codes(issues):
    return [i.code for i in issues]


def reference_component_sizes(cells):
    """Union-find over 6-neighbourhoods, as an independent check on the flood fill."""
    parent = {c: c for c in cells}

    def root(c):
        while parent[c] != c:
            parent[c] = parent[parent[c]]
            c = parent[c]
        return c

    for x, y, z in cells:
        for neighbour in ((x + 1, y, z), (x, y + 1, z), (x, y, z + 1)):
            if neighbour in parent:
                parent[root(neighbour)] = root((x, y, z))

    sizes = {}
    for c in cells:
        r = root(c)
        sizes[r] = sizes.get(r, 0) + 1
    return sorted(sizes.values(), reverse=True)


class TestOccupancyGrid:

    def test_cuboid_is_one_component(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 4, 4)}])
        grid = build_occupancy_grid(bp)
        components = find_components(grid)
        assert len(grid) == 125
        assert len(components) == 1
        assert components[0].touches_ground

    def test_flood_fill_matches_reference(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(3, 0, 3)},
            {"op": "fill", "block": "stone", "from": point(0, 1, 0), "to": point(0, 4, 0)},
            {"op": "fill", "block": "stone", "from": point(6, 3, 6), "to": point(8, 3, 8)},
            {"op": "line", "block": "stone", "from": point(6, 6, 0), "to": point(9, 6, 0)},
            {"op": "set", "block": "stone", "pos": point(9, 9, 9)},
            {"op": "set", "block": "stone", "pos": point(9, 8, 9)},
        ])
        grid = build_occupancy_grid(bp)
        sizes = [c.size for c in find_components(grid)]
        assert sizes == reference_component_sizes(list(grid.cells))
        assert sizes == [20, 9, 4, 2]

    def test_diagonal_cells_are_not_connected(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "set", "block": "stone", "pos": point(0, 0, 0)},
            {"op": "set", "block": "stone", "pos": point(1, 1, 0)},
        ])
        assert len(find_components(build_occupancy_grid(bp))) == 2

    def test_large_boxes_keep_only_their_shell(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(29, 29, 29)}],
            size=(30, 30, 30),
        )
        grid = build_occupancy_grid(bp)
        assert len(grid) == 30 ** 3 - 28 ** 3
        assert (15, 15, 15) not in grid
        assert (0, 15, 15) in grid
        assert (15, 15, 29) in grid

    def test_shell_threshold_is_configurable(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 4, 4)}])
        grid = build_occupancy_grid(bp, SpatialConfig(sample_volume_threshold=100))
        assert len(grid) == 125 - 27

    def test_oversized_box_is_clipped(self, make_blueprint, point):
        """A box far past the declared size only rasterises size + margin per axis."""
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(800, 800, 800)}])
        grid = build_occupancy_grid(bp)
        assert len(grid) == 20 ** 3
        assert max(max(cell) for cell in grid.cells) == 19

    def test_negative_corner_is_clipped(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(-5, 0, -5), "to": point(1, 0, 1)}])
        assert sorted(build_occupancy_grid(bp).cells) == [(x, 0, z) for x in range(2) for z in range(2)]

    def test_huge_shells_keep_only_edges(self, make_blueprint, point):
        bp = make_blueprint(
            [{"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(29, 29, 29)}],
            size=(30, 30, 30),
        )
        grid = build_occupancy_grid(bp, SpatialConfig(max_shell_cells=100))
        assert len(grid) == 4 * (30 + 30 + 30) - 16
        assert (0, 15, 0) in grid
        assert (0, 15, 15) not in grid
        assert len(find_components(grid)) == 1

    def test_ties_go_to_the_lowest_component(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(5, 5, 5), "to": point(6, 5, 5)},
            {"op": "fill", "block": "stone", "from": point(0, 2, 0), "to": point(1, 2, 0)},
        ])
        components = find_components(build_occupancy_grid(bp))
        assert components[0].lowest == (0, 2, 0)


class TestStructuralTags:

    def test_tags_from_name_role_and_step(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "hollow_box", "block": "stone", "from": point(0, 0, 0), "to": point(3, 3, 3)},
            {"op": "roof_flat", "block": "stone", "from": point(0, 4, 0), "to": point(3, 4, 3)},
            {"op": "set", "block": "stone", "pos": point(0, 0, 0), "tags": ["pillar"]},
            {"op": "door", "block": "oak_door", "pos": point(1, 0, 0)},
        ])
        walls, roof, pillar, door = (structural_tags(s) for s in bp.steps)
        assert {"wall", "fill"} <= walls
        assert "roof" in roof
        assert "pillar" in pillar
        assert door == frozenset({"structure"})


class TestSpatialValidator:

    def test_house_is_connected(self, house_blueprint):
        result = SpatialValidator().analyze(house_blueprint)
        assert result.valid
        assert result.issues == []
        assert result.stats["components"] == 1

    def test_roof_gap_of_five_is_an_error(self, make_blueprint, point):
        bp = make_blueprint(
            [
                {"op": "hollow_box", "block": "stone", "from": point(0, 0, 0), "to": point(9, 4, 9)},
                {"op": "roof_flat", "block": "stone", "from": point(0, 10, 0), "to": point(9, 12, 9)},
            ],
            size=(10, 13, 10),
        )
        result = SpatialValidator().analyze(bp)
        gap = next(i for i in result.issues if i.code == IssueCode.CONNECT_ROOF_GAP)
        assert gap.severity == Severity.ERROR
        assert gap.details["gap"] == 5
        assert gap.message == (
            "Roof starts at Y=10, but walls end at Y=4. "
            "There's a 5 block gap that may cause a floating roof."
        )
        assert not result.valid

    def test_small_roof_gap_is_a_warning(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "we_walls", "block": "stone", "from": point(0, 0, 0), "to": point(9, 4, 9)},
            {"op": "roof_flat", "block": "stone", "from": point(0, 7, 0), "to": point(9, 7, 9)},
        ])
        issues = SpatialValidator().analyze(bp).issues
        gap = next(i for i in issues if i.code == IssueCode.CONNECT_ROOF_GAP)
        assert gap.severity == Severity.WARNING
        assert gap.details["gap"] == 2

    def test_one_block_gap_is_tolerated(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "hollow_box", "block": "stone", "from": point(0, 0, 0), "to": point(9, 4, 9)},
            {"op": "roof_flat", "block": "stone", "from": point(0, 6, 0), "to": point(9, 6, 9)},
        ])
        assert IssueCode.CONNECT_ROOF_GAP not in codes(SpatialValidator().analyze(bp).issues)

    def test_floating_component(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)},
            {"op": "fill", "block": "stone", "from": point(7, 7, 7), "to": point(8, 8, 8)},
        ])
        issues = SpatialValidator().analyze(bp).issues
        assert codes(issues) == [IssueCode.CONNECT_FLOATING_COMPONENT]
        assert issues[0].severity == Severity.WARNING
        assert issues[0].message == (
            "8 blocks are disconnected from the main structure (near position 7, 7, 7)"
        )

    def test_large_floating_component_is_an_error(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)},
            {"op": "fill", "block": "stone", "from": point(6, 6, 6), "to": point(8, 8, 8)},
        ])
        issues = SpatialValidator().analyze(bp).issues
        assert issues[0].severity == Severity.ERROR
        assert issues[0].details["block_count"] == 27

    def test_main_component_touches_ground(self, make_blueprint, point):
        """A big airborne mass does not make the grounded base 'floating'."""
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(1, 0, 1)},
            {"op": "fill", "block": "stone", "from": point(5, 5, 5), "to": point(9, 9, 9)},
        ])
        issues = SpatialValidator().analyze(bp).issues
        floating = [i for i in issues if i.code == IssueCode.CONNECT_FLOATING_COMPONENT]
        assert floating[0].details["block_count"] == 125

    def test_tiny_fragments_are_ignored(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)},
            {"op": "set", "block": "stone", "pos": point(8, 8, 8)},
        ])
        assert SpatialValidator().analyze(bp).issues == []

    def test_floating_pillar(self, make_blueprint, point):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)},
            {"op": "set", "block": "stone", "pos": point(2, 3, 2), "tags": ["pillar"]},
        ])
        issues = SpatialValidator().analyze(bp).issues
        assert codes(issues) == [IssueCode.CONNECT_FLOATING_PILLAR]

    def test_no_foundation_is_informational(self, make_blueprint, point):
        bp = make_blueprint([{"op": "fill", "block": "stone", "from": point(0, 5, 0), "to": point(4, 6, 4)}])
        result = SpatialValidator().analyze(bp)
        assert codes(result.issues) == [IssueCode.CONNECT_NO_FOUNDATION]
        assert result.issues[0].severity == Severity.INFO
        assert result.valid

    @pytest.mark.parametrize("build_type", ["tree", "terrain", "Landscape"])
    def test_exempt_build_types(self, make_blueprint, point, build_type):
        bp = make_blueprint([
            {"op": "fill", "block": "stone", "from": point(0, 0, 0), "to": point(4, 0, 4)},
            {"op": "fill", "block": "stone", "from": point(6, 6, 6), "to": point(8, 8, 8)},
        ])
        assert SpatialValidator().validate(bp, BuildAnalysis(build_type=build_type)) == []

    def test_repair_text(self, make_blueprint, point):
        bp = make_blueprint(
            [
                {"op": "hollow_box", "block": "stone", "from": point(0, 0, 0), "to": point(9, 4, 9)},
                {"op": "roof_flat", "block": "stone", "from": point(0, 10, 0), "to": point(9, 12, 9)},
            ],
            size=(10, 13, 10),
        )
        text = format_connectivity_issues_for_repair(SpatialValidator().analyze(bp).issues)
        assert text.startswith("The blueprint has the following structural issues")
        assert "Details: {'roof_y': 10, 'wall_y': 4, 'gap': 5}" in text
        assert "  Fix: Extend walls to Y=9 or lower roof to Y=5" in text
        assert format_connectivity_issues_for_repair([]) == ""
