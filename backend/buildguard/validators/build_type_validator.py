"""Build-type guidance: warns when a build uses operations its type should avoid."""

from typing import Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import OperationKind as K
from buildguard.validators.base import BaseValidator

BUILD_TYPE_OPERATION_GUIDANCE: dict[str, dict] = {
    "tree": {
        "avoid": [
            K.WINDOW_STRIP, K.DOOR, K.ROOF_GABLE, K.ROOF_HIP, K.ROOF_FLAT,
            K.WE_WALLS, K.WE_PYRAMID, K.BALCONY, K.SPIRAL_STAIRCASE,
        ],
        "reason": "Trees typically use fill/we_fill for volumes, line for branches",
    },
    "statue": {
        "avoid": [K.WINDOW_STRIP, K.ROOF_GABLE, K.ROOF_HIP, K.ROOF_FLAT, K.DOOR],
        "reason": "Statues use fill/set/we_sphere for organic sculpting",
    },
    "pixel_art": {
        "avoid": [K.HOLLOW_BOX, K.ROOF_GABLE, K.WE_SPHERE, K.WE_CYLINDER],
        "reason": "Pixel art should use pixel_art operation or set operations",
    },
}


class BuildTypeValidator(BaseValidator):

    @property
    def name(self) -> str:
        return "BuildTypeValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        build_type = analysis.build_type if analysis else None
        guidance = BUILD_TYPE_OPERATION_GUIDANCE.get(build_type or "")
        if not guidance:
            return []

        unexpected = [
            (i, step.op) for i, step in enumerate(blueprint.steps) if step.op in guidance["avoid"]
        ]
        if not unexpected:
            return []

        names = ", ".join(op.value for _, op in unexpected)
        return [self._issue(
            IssueCode.BUILD_TYPE_DISCOURAGED_OP, Severity.WARNING,
            f"{build_type} uses unexpected operations: {names}. {guidance['reason']}",
            step=unexpected[0][0],
            field="op",
            operations=[op.value for _, op in unexpected],
        )]
