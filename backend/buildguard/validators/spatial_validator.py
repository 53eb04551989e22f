"""Spatial Connectivity Validator: simulates the build on a sparse occupancy grid.

Detects:
    - floating components (sections not attached to the main structure or ground)
    - roof gaps (roof starting well above the top of the walls)
    - floating pillars (columns that stop short of the ground)
    - builds with nothing near ground level

Every step's bounding box is clipped to the declared size plus a margin and
rasterised into the grid. Boxes larger than the sampling threshold contribute
only their shell, and shells above max_shell_cells only their twelve edges, so
the grid never grows past a fixed multiple of the clipped footprint.
"""

from collections import deque
from typing import Iterator, NamedTuple, Optional

import structlog
from pydantic import BaseModel, Field

from buildguard.config import SpatialConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Box, Step, Vec3
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import StructuralRole, role_of
from buildguard.validators.base import BaseValidator

logger = structlog.get_logger()

Cell = tuple[int, int, int]

# Op-name substrings -> structural tag
STRUCTURAL_TAGS: dict[str, tuple[str, ...]] = {
    "foundation": ("floor", "foundation", "base", "platform"),
    "wall": ("wall", "walls", "we_walls", "smart_wall", "outline"),
    "roof": ("roof", "roof_gable", "roof_flat", "roof_hip", "smart_roof", "ceiling"),
    "pillar": ("pillar", "column", "support", "post"),
    "fill": ("fill", "we_fill", "box", "hollow_box", "volume"),
}

ROLE_TAGS = {StructuralRole.WALL: "wall", StructuralRole.ROOF: "roof"}

# Floating is expected for these.
CONNECTIVITY_EXEMPT_TYPES = frozenset({"tree", "organic", "nature", "plant", "terrain", "landscape"})

NEIGHBOURS = ((-1, 0, 0), (1, 0, 0), (0, -1, 0), (0, 1, 0), (0, 0, -1), (0, 0, 1))


def structural_tags(step: Step) -> frozenset[str]:
    """Tags from the op name, its registry role and the step's own tags."""
    op = step.op.value
    tags = {tag for tag, patterns in STRUCTURAL_TAGS.items() if any(p in op for p in patterns)}
    role_tag = ROLE_TAGS.get(role_of(step.op))
    if role_tag:
        tags.add(role_tag)
    tags.update(step.tags)
    return frozenset(tags or {"structure"})


class OccupancyGrid:
    """Sparse (x, y, z) -> (tags, step index) map with y and tag indexes."""

    def __init__(self):
        self.cells: dict[Cell, tuple[frozenset[str], int]] = {}
        self.by_y: dict[int, list[Cell]] = {}
        self.by_tag: dict[str, list[Cell]] = {}

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, cell: Cell) -> bool:
        return cell in self.cells

    def add(self, cell: Cell, tags: frozenset[str], step_index: int) -> None:
        if cell not in self.cells:
            self.by_y.setdefault(cell[1], []).append(cell)
        self.cells[cell] = (tags, step_index)
        for tag in tags:
            self.by_tag.setdefault(tag, []).append(cell)

    def tagged(self, tag: str) -> list[Cell]:
        return self.by_tag.get(tag, [])

    def count_between(self, y_min: int, y_max: int) -> int:
        return sum(len(cells) for y, cells in self.by_y.items() if y_min <= y <= y_max)


def _box_cells(box: Box, shell_only: bool) -> Iterator[Cell]:
    for x in range(box.min_x, box.max_x + 1):
        x_edge = x in (box.min_x, box.max_x)
        for y in range(box.min_y, box.max_y + 1):
            if not shell_only or x_edge or y in (box.min_y, box.max_y):
                for z in range(box.min_z, box.max_z + 1):
                    yield (x, y, z)
            else:
                yield (x, y, box.min_z)
                if box.max_z != box.min_z:
                    yield (x, y, box.max_z)


def _edge_cells(box: Box) -> list[Cell]:
    xs, ys, zs = {box.min_x, box.max_x}, {box.min_y, box.max_y}, {box.min_z, box.max_z}
    seen: set[Cell] = set()
    for y in ys:
        for z in zs:
            seen.update((x, y, z) for x in range(box.min_x, box.max_x + 1))
    for x in xs:
        for z in zs:
            seen.update((x, y, z) for y in range(box.min_y, box.max_y + 1))
    for x in xs:
        for y in ys:
            seen.update((x, y, z) for z in range(box.min_z, box.max_z + 1))
    return sorted(seen)


def _shell_size(box: Box) -> int:
    dx, dy, dz = box.max_x - box.min_x + 1, box.max_y - box.min_y + 1, box.max_z - box.min_z + 1
    return dx * dy * dz - max(0, dx - 2) * max(0, dy - 2) * max(0, dz - 2)


def _clip(box: Box, blueprint: Blueprint, margin: int) -> Optional[Box]:
    """Intersect a box with [0, size + margin) on every axis; None if nothing is left."""
    size = blueprint.size
    clipped = Box(
        max(box.min_x, 0), max(box.min_y, 0), max(box.min_z, 0),
        min(box.max_x, size.width + margin - 1),
        min(box.max_y, size.height + margin - 1),
        min(box.max_z, size.depth + margin - 1),
    )
    if clipped.min_x > clipped.max_x or clipped.min_y > clipped.max_y or clipped.min_z > clipped.max_z:
        return None
    return clipped


def build_occupancy_grid(blueprint: Blueprint, config: Optional[SpatialConfig] = None) -> OccupancyGrid:
    config = config or SpatialConfig()
    grid = OccupancyGrid()
    for i, step in enumerate(blueprint.steps):
        box = step.bounds()
        if box is None:
            continue
        box = _clip(box, blueprint, config.clip_margin)
        if box is None:
            continue
        tags = structural_tags(step)
        if box.volume <= config.sample_volume_threshold:
            cells = _box_cells(box, shell_only=False)
        elif _shell_size(box) <= config.max_shell_cells:
            cells = _box_cells(box, shell_only=True)
        else:
            cells = _edge_cells(box)
        for cell in cells:
            grid.add(cell, tags, i)
    return grid


class Component(NamedTuple):
    cells: list[Cell]
    lowest: Cell          # min by (y, x, z)
    touches_ground: bool

    @property
    def size(self) -> int:
        return len(self.cells)


def _lowest(cell: Cell) -> tuple[int, int, int]:
    return (cell[1], cell[0], cell[2])


def find_components(grid: OccupancyGrid) -> list[Component]:
    """6-connected components, largest first; ties go to the lowest cell."""
    visited: set[Cell] = set()
    components = []

    for start in grid.cells:
        if start in visited:
            continue
        visited.add(start)
        queue = deque([start])
        cells = []
        while queue:
            x, y, z = queue.popleft()
            cells.append((x, y, z))
            for dx, dy, dz in NEIGHBOURS:
                neighbour = (x + dx, y + dy, z + dz)
                if neighbour in grid.cells and neighbour not in visited:
                    visited.add(neighbour)
                    queue.append(neighbour)

        components.append(Component(
            cells=cells,
            lowest=min(cells, key=_lowest),
            touches_ground=any(c[1] == 0 for c in cells),
        ))

    components.sort(key=lambda c: (-c.size, _lowest(c.lowest)))
    return components


class ConnectivityResult(BaseModel):
    valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)


class SpatialValidator(BaseValidator):

    def __init__(self, config: Optional[SpatialConfig] = None):
        self.config = config or SpatialConfig()

    @property
    def name(self) -> str:
        return "SpatialValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        if self._build_type(blueprint, analysis).lower() in CONNECTIVITY_EXEMPT_TYPES:
            return []
        return self.analyze(blueprint).issues

    def analyze(self, blueprint: Blueprint) -> ConnectivityResult:
        if not blueprint.steps:
            return ConnectivityResult(valid=True)

        grid = build_occupancy_grid(blueprint, self.config)
        components = find_components(grid)
        stats = {
            "total_blocks": len(grid),
            "roof_blocks": len(grid.tagged("roof")),
            "wall_blocks": len(grid.tagged("wall")),
            "foundation_blocks": len(grid.tagged("foundation")),
            "components": len(components),
        }

        issues = []

        # ── 1. Roof gap ──
        issues.extend(self._check_roof_gap(grid))

        # ── 2. Pillar grounding ──
        issues.extend(self._check_pillars(grid))

        # ── 3. Floating components ──
        issues.extend(self._check_components(components))

        # ── 4. Ground contact ──
        issues.extend(self._check_foundation(grid))

        if issues:
            logger.debug("connectivity_issues", count=len(issues), components=len(components))

        return ConnectivityResult(
            valid=not any(i.is_error for i in issues),
            issues=issues,
            stats=stats,
        )

    def _check_roof_gap(self, grid: OccupancyGrid) -> list[ValidationIssue]:
        roof, wall = grid.tagged("roof"), grid.tagged("wall")
        if not roof or not wall:
            return []

        roof_y = min(c[1] for c in roof)
        wall_y = max(c[1] for c in wall)
        gap = roof_y - wall_y - 1
        if gap <= self.config.roof_gap_warning:
            return []

        severity = Severity.ERROR if gap >= self.config.roof_gap_error else Severity.WARNING
        return [self._issue(
            IssueCode.CONNECT_ROOF_GAP, severity,
            f"Roof starts at Y={roof_y}, but walls end at Y={wall_y}. "
            f"There's a {gap} block gap that may cause a floating roof.",
            suggestion=f"Extend walls to Y={roof_y - 1} or lower roof to Y={wall_y + 1}",
            type="roof_gap", roof_y=roof_y, wall_y=wall_y, gap=gap,
        )]

    def _check_pillars(self, grid: OccupancyGrid) -> list[ValidationIssue]:
        issues = []
        for x, y, z in sorted(set(grid.tagged("pillar")), key=_lowest):
            if len(issues) >= self.config.max_pillar_issues:
                break
            if y > 0 and (x, y - 1, z) not in grid:
                issues.append(self._issue(
                    IssueCode.CONNECT_FLOATING_PILLAR, Severity.WARNING,
                    f"Pillar at ({x}, {y}, {z}) doesn't reach the ground (Y=0)",
                    position=Vec3(x=x, y=y, z=z),
                    suggestion="Extend pillar down to Y=0",
                    type="floating_pillar",
                ))
        return issues

    def _check_components(self, components: list[Component]) -> list[ValidationIssue]:
        if len(components) < 2:
            return []

        main = next((c for c in components if c.touches_ground), components[0])
        floating = [
            c for c in components
            if c is not main and not c.touches_ground and c.size >= self.config.min_component_size
        ]

        issues = []
        for component in floating[:self.config.max_floating_reported]:
            x, y, z = component.lowest
            severity = Severity.ERROR if component.size >= self.config.floating_error_size else Severity.WARNING
            issues.append(self._issue(
                IssueCode.CONNECT_FLOATING_COMPONENT, severity,
                f"{component.size} blocks are disconnected from the main structure "
                f"(near position {x}, {y}, {z})",
                position=Vec3(x=x, y=y, z=z),
                suggestion="Connect this section to the main structure or lower its Y position",
                type="floating_component", block_count=component.size,
            ))
        return issues

    def _check_foundation(self, grid: OccupancyGrid) -> list[ValidationIssue]:
        if len(grid) <= self.config.foundation_min_blocks:
            return []
        if grid.count_between(0, self.config.foundation_band) > 0:
            return []
        return [self._issue(
            IssueCode.CONNECT_NO_FOUNDATION, Severity.INFO,
            f"Build has no blocks at or near ground level (Y=0-{self.config.foundation_band}). "
            "The structure may appear floating.",
            suggestion="Add a foundation or floor at Y=0",
            type="no_foundation",
        )]


def format_connectivity_issues_for_repair(issues: list[ValidationIssue]) -> str:
    """Render connectivity issues as a block of text for a repair prompt."""
    if not issues:
        return ""

    lines = ["The blueprint has the following structural issues that need repair:"]
    for issue in issues:
        lines.append(f"- {issue.message}")
        if issue.suggestion:
            lines.append(f"  Fix: {issue.suggestion}")
        if issue.details.get("type") == "roof_gap":
            positions = {k: issue.details[k] for k in ("roof_y", "wall_y", "gap")}
            lines.append(f"  Details: {positions}")
    lines.append("")
    lines.append("Please modify the blueprint to fix these issues while maintaining the overall design.")
    return "\n".join(lines)
