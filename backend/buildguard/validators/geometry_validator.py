"""Geometry Validator: geometric correctness beyond parameter presence.

Checks:
    1. Vertical ordering of structural roles (floor < walls < roof)
    2. Non-degenerate volumes for fill-family operations
    3. Containment inside the declared size, with overhang tolerance
    4. Doors and windows sitting inside some wall (advisory)
"""

from typing import Optional

from buildguard.config import GeometryConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Box
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import VOLUME_OPS, OperationKind, StructuralRole, ops_with_role, role_of
from buildguard.validators.base import BaseValidator

# Towers, landmarks and organic builds are not laid out foundation -> wall -> roof.
NON_LAYERED_BUILD_TYPES = frozenset({"pixel_art", "statue", "tree", "art", "tower", "infrastructure", "landmark"})

ORDERED_ROLES = (StructuralRole.FOUNDATION, StructuralRole.FLOOR, StructuralRole.WALL, StructuralRole.ROOF)
CONTAINED_DETAIL_OPS = frozenset({OperationKind.DOOR, OperationKind.WINDOW_STRIP})


class GeometryValidator(BaseValidator):

    def __init__(self, config: Optional[GeometryConfig] = None):
        self.config = config or GeometryConfig()

    @property
    def name(self) -> str:
        return "GeometryValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues = []

        # ── 1. Vertical ordering (layered builds only) ──
        if self._build_type(blueprint, analysis) not in NON_LAYERED_BUILD_TYPES:
            issues.extend(self._check_vertical_ordering(blueprint))

        # ── 2. Non-degenerate volumes ──
        issues.extend(self._check_degenerate_volumes(blueprint))

        # ── 3. Size containment ──
        issues.extend(self.check_size_containment(blueprint))

        # ── 4. Detail containment (advisory) ──
        issues.extend(self._check_detail_containment(blueprint))

        return issues

    @staticmethod
    def role_y_ranges(blueprint: Blueprint) -> dict[StructuralRole, tuple[int, int]]:
        """(minY, maxY) occupied by each layered role present in the blueprint."""
        ranges: dict[StructuralRole, tuple[int, int]] = {}
        for role in ORDERED_ROLES:
            ops = set(ops_with_role(role))
            boxes = [b for b in (s.bounds() for s in blueprint.steps if s.op in ops) if b is not None]
            if boxes:
                ranges[role] = (min(b.min_y for b in boxes), max(b.max_y for b in boxes))
        return ranges

    def _check_vertical_ordering(self, blueprint: Blueprint) -> list[ValidationIssue]:
        issues = []
        ranges = self.role_y_ranges(blueprint)
        roof = ranges.get(StructuralRole.ROOF)
        wall = ranges.get(StructuralRole.WALL)
        floor = ranges.get(StructuralRole.FLOOR)

        if roof and wall and roof[0] < wall[1] - 1:
            issues.append(self._issue(
                IssueCode.GEOM_ROOF_BELOW_WALLS, Severity.ERROR,
                f"Geometry: Roof (y={roof[0]}) is below or inside walls (y={wall[1]})",
                suggestion=f"Start the roof at y={wall[1]} or higher",
                roof_min_y=roof[0], wall_max_y=wall[1],
            ))

        if wall and floor and wall[0] < floor[1]:
            issues.append(self._issue(
                IssueCode.GEOM_WALLS_BELOW_FLOOR, Severity.ERROR,
                f"Geometry: Walls (y={wall[0]}) start below floor level (y={floor[1]})",
                suggestion=f"Start the walls at y={floor[1]} or higher",
                wall_min_y=wall[0], floor_max_y=floor[1],
            ))

        return issues

    def _check_degenerate_volumes(self, blueprint: Blueprint) -> list[ValidationIssue]:
        issues = []
        for i, step in enumerate(blueprint.steps):
            if step.op not in VOLUME_OPS or step.from_ is None or step.to is None:
                continue
            if step.from_ == step.to:
                issues.append(self._issue(
                    IssueCode.GEOM_ZERO_VOLUME, Severity.ERROR,
                    f"Geometry: {self._step_label(i, step)} has zero volume (from == to). "
                    "Use 'set' for single blocks.",
                    step=i, position=step.from_,
                    suggestion="Replace with a 'set' step at the same position",
                ))
        return issues

    def check_size_containment(self, blueprint: Blueprint) -> list[ValidationIssue]:
        """Each step's box may overhang the declared size by the configured tolerance."""
        issues = []
        size = blueprint.size
        checks = (
            ("width", "x", size.width, self.config.tolerance_x, lambda b: b.max_x),
            ("height", "y", size.height, self.config.tolerance_y, lambda b: b.max_y),
            ("depth", "z", size.depth, self.config.tolerance_z, lambda b: b.max_z),
        )
        for i, step in enumerate(blueprint.steps):
            box = step.bounds()
            if box is None:
                continue
            for dim, axis, declared, tolerance, top in checks:
                if top(box) > declared + tolerance:
                    issues.append(self._issue(
                        IssueCode.GEOM_EXCEEDS_SIZE, Severity.ERROR,
                        f"Geometry: {self._step_label(i, step)} exceeds build {dim}: "
                        f"{axis}={top(box)} > {declared}",
                        step=i, field=f"size.{dim}",
                    ))
        return issues

    def _check_detail_containment(self, blueprint: Blueprint) -> list[ValidationIssue]:
        walls = [
            step.bounds() for step in blueprint.steps
            if role_of(step.op) == StructuralRole.WALL and step.bounds() is not None
        ]
        if not walls:
            return []

        issues = []
        for i, step in enumerate(blueprint.steps):
            if step.op not in CONTAINED_DETAIL_OPS:
                continue
            box = step.bounds()
            if box is None or any(_inside_wall(box, wall) for wall in walls):
                continue
            issues.append(self._issue(
                IssueCode.GEOM_DETAIL_OUTSIDE_WALLS, Severity.WARNING,
                f"Geometry: {self._step_label(i, step)} may be outside wall bounds",
                step=i,
            ))
        return issues


def _inside_wall(detail: Box, wall: Box) -> bool:
    return (
        wall.min_x - 1 <= detail.min_x and detail.max_x <= wall.max_x + 1
        and wall.min_y <= detail.min_y and detail.max_y <= wall.max_y
        and wall.min_z - 1 <= detail.min_z and detail.max_z <= wall.max_z + 1
    )
