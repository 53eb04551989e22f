"""Limits Validator: step count, world height and advisory size ceilings.

Step count and height are hard errors (the world has a build height). Volume,
width, depth and palette size are warnings so large creative builds still pass.
"""

from typing import Optional

from buildguard.config import SafetyLimits
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator


class LimitsValidator(BaseValidator):

    def __init__(self, limits: Optional[SafetyLimits] = None):
        self.limits = limits or SafetyLimits()

    @property
    def name(self) -> str:
        return "LimitsValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues = []
        limits = self.limits
        size = blueprint.size

        if len(blueprint.steps) > limits.max_steps:
            issues.append(self._issue(
                IssueCode.LIMIT_TOO_MANY_STEPS, Severity.ERROR,
                f"Too many steps ({len(blueprint.steps)} > {limits.max_steps})",
                field="steps", value=len(blueprint.steps), limit=limits.max_steps,
            ))

        if size.volume > limits.max_blocks:
            issues.append(self._issue(
                IssueCode.LIMIT_VOLUME, Severity.WARNING,
                f"Large build volume: {size.volume:,} blocks (limit: {limits.max_blocks:,})",
                field="size", value=size.volume, limit=limits.max_blocks,
            ))

        if size.width > limits.max_width:
            issues.append(self._issue(
                IssueCode.LIMIT_WIDTH, Severity.WARNING,
                f"Wide build: {size.width} blocks (soft limit: {limits.max_width})",
                field="size.width", value=size.width, limit=limits.max_width,
            ))

        if size.depth > limits.max_depth:
            issues.append(self._issue(
                IssueCode.LIMIT_DEPTH, Severity.WARNING,
                f"Deep build: {size.depth} blocks (soft limit: {limits.max_depth})",
                field="size.depth", value=size.depth, limit=limits.max_depth,
            ))

        if size.height > limits.max_height:
            issues.append(self._issue(
                IssueCode.LIMIT_HEIGHT, Severity.ERROR,
                f"Height exceeds world limit ({size.height} > {limits.max_height})",
                field="size.height", value=size.height, limit=limits.max_height,
            ))

        palette_size = len(blueprint.palette)
        if palette_size > limits.max_unique_blocks:
            issues.append(self._issue(
                IssueCode.LIMIT_UNIQUE_BLOCKS, Severity.WARNING,
                f"Large palette: {palette_size} unique blocks (limit: {limits.max_unique_blocks})",
                field="palette", value=palette_size, limit=limits.max_unique_blocks,
            ))

        return issues
