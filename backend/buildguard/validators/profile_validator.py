"""Profile Validator: profile-weighted quality score plus always-on safety ceilings.

Score: start at 1.0 and multiply by a penalty for every required element the
profile expects but the blueprint lacks. The profile weight then pulls the raw
score toward 1.0 for lenient build types:

    weighted = 1 - (1 - raw) * weight
"""

from typing import Optional

from pydantic import BaseModel, Field

from buildguard.config import ScoringConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, QualityScore, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator
from buildguard.validators.profiles import ValidationProfile, detect_build_type, get_validation_profile


class ProfileValidation(BaseModel):
    """Outcome of scoring a blueprint against its profile."""

    profile: ValidationProfile
    build_type: str
    quality: QualityScore
    warnings: list[ValidationIssue] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)
    safety_passed: bool = True


def grade_for(score: float, scoring: Optional[ScoringConfig] = None) -> str:
    """Letter grade from the configured thresholds (A >= .9 ... D >= .5, else F)."""
    scoring = scoring or ScoringConfig()
    for grade, threshold in sorted(scoring.grade_thresholds.items(), key=lambda kv: -kv[1]):
        if score >= threshold:
            return grade
    return "F"


class ProfileValidator(BaseValidator):
    """Scores structural requirements and enforces the profile's size ceilings."""

    def __init__(self, scoring: Optional[ScoringConfig] = None):
        self.scoring = scoring or ScoringConfig()

    @property
    def name(self) -> str:
        return "ProfileValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        result = self.evaluate(blueprint, analysis)
        return result.errors + result.warnings

    def evaluate(
        self,
        blueprint: Blueprint,
        analysis: Optional[BuildAnalysis] = None,
        build_type: Optional[str] = None,
    ) -> ProfileValidation:
        build_type = build_type or detect_build_type(blueprint, analysis)
        profile = get_validation_profile(build_type)

        raw, warnings = self._score_requirements(blueprint, profile)
        weighted = 1.0 - (1.0 - raw) * profile.quality_weight
        quality = QualityScore(
            raw=raw,
            weighted=weighted,
            grade=grade_for(weighted, self.scoring),
            passed=weighted >= self.scoring.profile_pass_threshold,
        )

        safety = self._check_safety_bounds(blueprint, profile)

        return ProfileValidation(
            profile=profile,
            build_type=build_type,
            quality=quality,
            warnings=warnings + [i for i in safety if not i.is_error],
            errors=[i for i in safety if i.is_error],
            safety_passed=not safety,
        )

    def _score_requirements(
        self, blueprint: Blueprint, profile: ValidationProfile
    ) -> tuple[float, list[ValidationIssue]]:
        s = self.scoring
        steps = blueprint.steps
        ops = " ".join(step.op.value for step in steps)
        blocks = " ".join(self._resolved_blocks(blueprint))
        warnings = []
        score = 1.0

        if profile.require_roof:
            has_roof = self._contains_any(ops, ["roof", "pyramid"]) or self._contains_any(blocks, ["stairs", "slab"])
            if not has_roof:
                warnings.append(self._issue(
                    IssueCode.PROFILE_MISSING_ROOF, Severity.WARNING, "No roof structure detected",
                ))
                score *= s.missing_roof_penalty

        if profile.require_walls:
            has_walls = self._contains_any(ops, ["wall", "hollow_box"])
            if not has_walls and len(steps) > s.walls_min_steps:
                warnings.append(self._issue(
                    IssueCode.PROFILE_MISSING_WALLS, Severity.WARNING, "No wall structure detected",
                ))
                score *= s.missing_walls_penalty

        if profile.require_door:
            if "door" not in ops and "door" not in blocks:
                warnings.append(self._issue(
                    IssueCode.PROFILE_MISSING_DOOR, Severity.WARNING, "No door detected",
                ))
                score *= s.missing_door_penalty

        if profile.require_foundation and not profile.allow_elevated:
            if not any(self._near_ground(step, s.foundation_max_y) for step in steps):
                warnings.append(self._issue(
                    IssueCode.PROFILE_MISSING_FOUNDATION, Severity.WARNING,
                    "No foundation/base detected at ground level",
                ))
                score *= s.missing_foundation_penalty

        return max(0.0, score), warnings

    @staticmethod
    def _near_ground(step, max_y: int) -> bool:
        for key in ("from", "to", "pos", "base"):
            point = step.param(key)
            if point is not None:
                return point.y <= max_y
        return False

    def _check_safety_bounds(self, blueprint: Blueprint, profile: ValidationProfile) -> list[ValidationIssue]:
        box = blueprint.content_bounds()
        if box is None:
            return []

        issues = []
        width = box.max_x - box.min_x + 1
        height = box.max_y - box.min_y + 1
        depth = box.max_z - box.min_z + 1

        for code, label, value, limit in (
            (IssueCode.PROFILE_EXCEEDS_MAX_HEIGHT, "height", height, profile.max_height),
            (IssueCode.PROFILE_EXCEEDS_MAX_WIDTH, "width", width, profile.max_width),
            (IssueCode.PROFILE_EXCEEDS_MAX_DEPTH, "depth", depth, profile.max_depth),
        ):
            if value > limit:
                issues.append(self._issue(
                    code, Severity.ERROR,
                    f"Build {label} {value} exceeds profile maximum {limit}",
                    value=value, limit=limit, profile=profile.id,
                ))

        if not profile.allow_floating and box.min_y > self.scoring.floating_min_y:
            issues.append(self._issue(
                IssueCode.PROFILE_FLOATING_STRUCTURE, Severity.WARNING,
                f"Build appears to be floating (minY={box.min_y}), but profile does not allow floating",
                min_y=box.min_y, profile=profile.id,
            ))

        return issues


def validate_with_profile(
    blueprint: Blueprint,
    analysis: Optional[BuildAnalysis] = None,
    scoring: Optional[ScoringConfig] = None,
    build_type: Optional[str] = None,
) -> ProfileValidation:
    return ProfileValidator(scoring).evaluate(blueprint, analysis, build_type)
