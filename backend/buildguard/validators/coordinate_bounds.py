"""Coordinate Bounds Validator: every coordinate must lie in [0, size).

Coordinates slightly past the declared size are tolerated: the size grows to
fit them, by at most `coordinate_slack` blocks per axis. Anything further out
is an error, and the size is left alone if any error was found.

This is the one check that changes the blueprint, so the orchestrator runs it
before the parallel phase.
"""

from typing import Optional

import structlog

from buildguard.config import SafetyLimits
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Size, Step
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator

logger = structlog.get_logger()

AXES = (("x", "width"), ("y", "height"), ("z", "depth"))


class CoordinateBoundsValidator(BaseValidator):

    def __init__(self, limits: Optional[SafetyLimits] = None):
        self.limits = limits or SafetyLimits()

    @property
    def name(self) -> str:
        return "CoordinateBoundsValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        _, issues = self.check(blueprint)
        return issues

    def apply(self, blueprint: Blueprint) -> tuple[Blueprint, list[ValidationIssue]]:
        """Check bounds and return the blueprint with its size grown when that is safe."""
        new_size, issues = self.check(blueprint)
        if new_size is None:
            return blueprint, issues
        logger.info(
            "blueprint_size_expanded",
            before=blueprint.size.model_dump(),
            after=new_size.model_dump(),
        )
        return blueprint.model_copy(update={"size": new_size}), issues

    def check(self, blueprint: Blueprint) -> tuple[Optional[Size], list[ValidationIssue]]:
        """Return (expanded size or None, issues) without touching the blueprint."""
        declared = blueprint.size
        slack = self.limits.coordinate_slack
        grown = {dim: getattr(declared, dim) for _, dim in AXES}
        issues: list[ValidationIssue] = []

        for i, step in enumerate(blueprint.steps):
            issues.extend(self._check_step(step, i, f"Step {i}", declared, slack, grown))
            if step.fallback is not None:
                issues.extend(self._check_step(step.fallback, i, f"Step {i} fallback", declared, slack, grown))

        has_errors = any(issue.is_error for issue in issues)
        if has_errors or grown == declared.model_dump():
            return None, issues

        new_size = Size(**grown)
        issues.append(self._issue(
            IssueCode.GEOM_SIZE_EXPANDED, Severity.INFO,
            f"Auto-expanded blueprint size from {declared.width}x{declared.height}x{declared.depth} "
            f"to {new_size.width}x{new_size.height}x{new_size.depth}",
            field="size",
            before=declared.model_dump(),
            after=new_size.model_dump(),
        ))
        return new_size, issues

    def _check_step(
        self, step: Step, index: int, label: str, declared: Size, slack: int, grown: dict
    ) -> list[ValidationIssue]:
        issues = []
        for key, point in step.coordinates().items():
            for axis, dim in AXES:
                value = getattr(point, axis)
                limit = getattr(declared, dim)

                if value < 0:
                    issues.append(self._issue(
                        IssueCode.GEOM_NEGATIVE_COORDINATE, Severity.ERROR,
                        f"{label}: '{key}.{axis}' negative ({value})",
                        step=index, field=f"{key}.{axis}", position=point,
                    ))
                elif value >= limit + slack:
                    issues.append(self._issue(
                        IssueCode.GEOM_OUT_OF_BOUNDS, Severity.ERROR,
                        f"{label}: '{key}.{axis}' out of bounds ({value} >= {limit})",
                        step=index, field=f"{key}.{axis}", position=point,
                        suggestion=f"Keep {axis} below {limit} or enlarge size.{dim}",
                    ))
                elif value >= grown[dim]:
                    grown[dim] = value + 1
        return issues
