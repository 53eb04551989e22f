"""World-edit Validator: selection size caps, command budget and fallbacks.

Also produces the world-edit stats (command count, approximate block count)
reported in the final verdict.
"""

import math
from typing import Optional

from buildguard.config import WorldEditLimits
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Step
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.models.results import WorldEditStats
from buildguard.operations import OperationKind as K
from buildguard.operations import is_world_edit
from buildguard.validators.base import BaseValidator


class WorldEditValidator(BaseValidator):

    def __init__(self, limits: Optional[WorldEditLimits] = None):
        self.limits = limits or WorldEditLimits()

    @property
    def name(self) -> str:
        return "WorldEditValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues, _ = self.check(blueprint)
        return issues

    def check(self, blueprint: Blueprint) -> tuple[list[ValidationIssue], WorldEditStats]:
        issues: list[ValidationIssue] = []
        stats = WorldEditStats()

        for i, step in enumerate(blueprint.steps):
            if not is_world_edit(step.op):
                continue
            stats.commands += 1

            if self.limits.fallback_on_error and step.fallback is None:
                issues.append(self._issue(
                    IssueCode.WE_MISSING_FALLBACK, Severity.ERROR,
                    f"WorldEdit operation '{step.op.value}' missing fallback operation",
                    step=i, field="fallback",
                    suggestion="Add a vanilla fallback step, e.g. fill for we_fill",
                ))

            if step.from_ is not None and step.to is not None:
                step_issues, volume = self._check_selection(step, i)
            elif step.op == K.WE_CYLINDER:
                step_issues, volume = self._check_cylinder(step, i)
            elif step.op == K.WE_SPHERE:
                step_issues, volume = self._check_sphere(step, i)
            elif step.op == K.WE_PYRAMID:
                step_issues, volume = self._check_pyramid(step, i)
            else:
                step_issues, volume = [], 0
            issues.extend(step_issues)
            stats.blocks += volume

        if stats.commands and not self.limits.enabled:
            issues.append(self._issue(
                IssueCode.WE_DISABLED, Severity.WARNING,
                f"WorldEdit is disabled; {stats.commands} operation(s) will run through their fallbacks",
                value=stats.commands,
            ))

        if stats.commands > self.limits.max_commands_per_build:
            issues.append(self._issue(
                IssueCode.WE_TOO_MANY_COMMANDS, Severity.ERROR,
                f"Too many WorldEdit commands: {stats.commands} (max: {self.limits.max_commands_per_build})",
                value=stats.commands, limit=self.limits.max_commands_per_build,
            ))

        return issues, stats

    def _check_selection(self, step: Step, index: int) -> tuple[list[ValidationIssue], int]:
        dx = abs(step.to.x - step.from_.x) + 1
        dy = abs(step.to.y - step.from_.y) + 1
        dz = abs(step.to.z - step.from_.z) + 1
        volume = dx * dy * dz
        op = step.op.value
        issues = self._volume_issue(op, volume, index, "Selection too large")

        max_dim = self.limits.max_selection_dimension
        if dx > max_dim or dy > max_dim or dz > max_dim:
            issues.append(self._issue(
                IssueCode.WE_SELECTION_DIMENSION, Severity.ERROR,
                f"{op}: Selection dimension too large: {dx}x{dy}x{dz} (max per axis: {max_dim})",
                step=index, dimensions=[dx, dy, dz], limit=max_dim,
            ))
        return issues, volume

    def _check_cylinder(self, step: Step, index: int) -> tuple[list[ValidationIssue], int]:
        if not step.radius or not step.height:
            return [self._missing_params("we_cylinder requires radius and height parameters", index)], 0

        volume = math.floor(math.pi * step.radius * step.radius * step.height)
        issues = self._volume_issue("we_cylinder", volume, index, "Volume too large")

        max_dim = self.limits.max_selection_dimension
        if step.radius * 2 > max_dim or step.height > max_dim:
            issues.append(self._issue(
                IssueCode.WE_SELECTION_DIMENSION, Severity.ERROR,
                f"we_cylinder: Dimensions too large: radius {step.radius}, height {step.height} "
                f"(max dimension: {max_dim})",
                step=index, limit=max_dim,
            ))
        return issues, volume

    def _check_sphere(self, step: Step, index: int) -> tuple[list[ValidationIssue], int]:
        if not step.radius:
            return [self._missing_params("we_sphere requires radius parameter", index)], 0

        volume = math.floor(4 / 3 * math.pi * step.radius ** 3)
        issues = self._volume_issue("we_sphere", volume, index, "Volume too large")

        max_dim = self.limits.max_selection_dimension
        if step.radius * 2 > max_dim:
            issues.append(self._issue(
                IssueCode.WE_SELECTION_DIMENSION, Severity.ERROR,
                f"we_sphere: Radius too large: {step.radius} (max dimension: {max_dim})",
                step=index, limit=max_dim,
            ))
        return issues, volume

    def _check_pyramid(self, step: Step, index: int) -> tuple[list[ValidationIssue], int]:
        if not step.height:
            return [self._missing_params("we_pyramid requires height parameter", index)], 0

        volume = math.floor(step.height ** 3 / 3)
        issues = self._volume_issue("we_pyramid", volume, index, "Volume too large")

        max_dim = self.limits.max_selection_dimension
        if step.height > max_dim:
            issues.append(self._issue(
                IssueCode.WE_SELECTION_DIMENSION, Severity.ERROR,
                f"we_pyramid: Height too large: {step.height} (max dimension: {max_dim})",
                step=index, limit=max_dim,
            ))
        return issues, volume

    def _volume_issue(self, op: str, volume: int, index: int, label: str) -> list[ValidationIssue]:
        max_volume = self.limits.max_selection_volume
        if volume <= max_volume:
            return []
        return [self._issue(
            IssueCode.WE_SELECTION_VOLUME, Severity.ERROR,
            f"{op}: {label}: {volume} blocks (max: {max_volume})",
            step=index, value=volume, limit=max_volume,
        )]

    def _missing_params(self, message: str, index: int) -> ValidationIssue:
        return self._issue(IssueCode.PARAM_MISSING_REQUIRED, Severity.ERROR, message, step=index)
