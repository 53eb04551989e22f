"""Feature Validator: advisory check that requested features show up somewhere.

Generators implement a door, a window or a roof in many ways, so misses are
warnings only. Creative build types are not checked.
"""

from typing import Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import OperationKind as K
from buildguard.validators.base import BaseValidator

CREATIVE_BUILD_TYPES = frozenset({"pixel_art", "statue", "character", "art", "sculpture", "platform", "tree"})

ROOF_OPS = frozenset({K.ROOF_GABLE, K.ROOF_HIP, K.ROOF_FLAT, K.SMART_ROOF, K.WE_PYRAMID})
ROOF_BLOCK_HINTS = ("stairs", "slab", "roof")
WINDOW_BLOCK_HINTS = ("glass", "pane")


class FeatureValidator(BaseValidator):

    @property
    def name(self) -> str:
        return "FeatureValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        build_type = (analysis.build_type if analysis and analysis.build_type else None) or "house"
        features = {f.lower() for f in (analysis.features if analysis else [])}
        if build_type in CREATIVE_BUILD_TYPES or not features:
            return []

        ops = [step.op for step in blueprint.steps]
        blocks = self._resolved_blocks(blueprint)
        issues = []

        if "door" in features:
            has_door = K.DOOR in ops or K.SET in ops or any("door" in b for b in blocks)
            if not has_door:
                issues.append(self._missing("door", "No explicit door operation found (may be acceptable)"))

        if "windows" in features or "window" in features:
            has_windows = (
                K.WINDOW_STRIP in ops
                or ops.count(K.SET) > 1
                or any(self._contains_any(b, WINDOW_BLOCK_HINTS) for b in blocks)
            )
            if not has_windows:
                issues.append(self._missing("windows", "No explicit window operation found (may be acceptable)"))

        if "roof" in features:
            has_roof = any(op in ROOF_OPS for op in ops) or any(
                self._contains_any(b, ROOF_BLOCK_HINTS) for b in blocks
            )
            if not has_roof:
                issues.append(self._missing("roof", "No explicit roof operation found (may be acceptable)"))

        return issues

    def _missing(self, feature: str, message: str) -> ValidationIssue:
        return self._issue(
            IssueCode.FEATURE_NOT_FOUND, Severity.WARNING,
            f"Advisory: {message}",
            field="features",
            feature=feature,
        )
