"""Legacy Quality Validator: product score over four independent checks.

    score = features * structure * proportions * palette

Each check multiplies by a fixed penalty per miss (see ScoringConfig). The
orchestrator combines this with the profile score as min(profile, legacy).
"""

from typing import Optional

from pydantic import BaseModel, Field

from buildguard.config import SafetyLimits, ScoringConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator

ENFORCEABLE_FEATURES = frozenset({
    "door", "doors", "window", "windows", "roof",
    "stairs", "staircase", "spiral staircase", "spiral_staircase",
    "balcony", "tower", "towers", "dome", "fence", "railing",
})

ORGANIC_STYLE_HINTS = ("tree", "foliage", "organic", "natural")
ORGANIC_FEATURES = frozenset({"tree", "foliage", "canopy", "roots", "leaves"})


class LegacyQuality(BaseModel):
    score: float
    passed: bool
    penalties: list[ValidationIssue] = Field(default_factory=list)
    breakdown: dict[str, float] = Field(default_factory=dict)


class QualityValidator(BaseValidator):
    """Feature completeness, structural integrity, proportions and palette usage."""

    def __init__(self, limits: Optional[SafetyLimits] = None, scoring: Optional[ScoringConfig] = None):
        self.limits = limits or SafetyLimits()
        self.scoring = scoring or ScoringConfig()

    @property
    def name(self) -> str:
        return "QualityValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        return self.score(blueprint, analysis).penalties

    def score(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> LegacyQuality:
        penalties: list[ValidationIssue] = []
        breakdown = {}

        for key, check in (
            ("feature_completeness", self._check_features),
            ("structural_integrity", self._check_structure),
            ("proportions", self._check_proportions),
            ("palette_usage", self._check_palette),
        ):
            part, issues = check(blueprint, analysis)
            breakdown[key] = part
            penalties.extend(issues)

        total = 1.0
        for part in breakdown.values():
            total *= part

        return LegacyQuality(
            score=total,
            passed=total >= self.limits.min_quality_score,
            penalties=penalties,
            breakdown=breakdown,
        )

    # ── Checks ──

    def _check_features(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis]):
        requested = {f.lower() for f in (analysis.features if analysis else [])}
        enforceable = sorted(requested & ENFORCEABLE_FEATURES)
        if not enforceable:
            return 1.0, []

        present = self._present_features(blueprint)
        score, issues = 1.0, []
        for feature in enforceable:
            if feature not in present:
                issues.append(self._warn(IssueCode.QUALITY_MISSING_FEATURE, f"Missing requested feature: {feature}"))
                score *= self.scoring.missing_feature_penalty
        return score, issues

    def _present_features(self, blueprint: Blueprint) -> set[str]:
        present = set()
        for step in blueprint.steps:
            op = step.op.value
            block = (blueprint.resolve_block(step.block) or "").lower()

            if "door" in op or "door" in block:
                present.update({"door", "doors"})
            if "window" in op or "glass" in block or "pane" in block:
                present.update({"window", "windows"})
            if "roof" in op or "pyramid" in op:
                present.add("roof")
            if "stairs" in op or "stairs" in block:
                present.update({"stairs", "staircase"})
            if "spiral" in op:
                present.update({"spiral_staircase", "spiral staircase"})
            if "balcony" in op:
                present.add("balcony")
            if "tower" in op or "cylinder" in op:
                present.update({"tower", "towers"})
            if "dome" in op or "sphere" in op:
                present.add("dome")
            if "fence" in op or "fence" in block:
                present.update({"fence", "railing"})
        return present

    def _check_structure(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis]):
        if self._is_organic(blueprint, analysis):
            return 1.0, []

        s = self.scoring
        steps = blueprint.steps
        score, issues = 1.0, []

        has_foundation = any(
            point.y <= 1
            for step in steps
            for key, point in step.coordinates().items()
            if key != "center"
        )
        if not has_foundation:
            issues.append(self._warn(
                IssueCode.QUALITY_STRUCTURE, "No foundation detected (recommended: operations at y=0-1)",
            ))
            score *= s.no_foundation_penalty

        has_walls = any("wall" in step.op.value or step.op.value == "hollow_box" for step in steps)
        if not has_walls and len(steps) > s.walls_min_steps:
            issues.append(self._warn(IssueCode.QUALITY_STRUCTURE, "No walls detected (recommended for structures)"))
            score *= s.no_walls_penalty

        if self._max_height(blueprint) > s.roof_expected_min_height:
            has_roof = any("roof" in step.op.value or "pyramid" in step.op.value for step in steps)
            if not has_roof:
                issues.append(self._warn(
                    IssueCode.QUALITY_STRUCTURE,
                    f"No roof detected for tall structure (height > {s.roof_expected_min_height})",
                ))
                score *= s.no_roof_penalty

        return score, issues

    @staticmethod
    def _max_height(blueprint: Blueprint) -> int:
        tops = []
        for step in blueprint.steps:
            if step.to is not None:
                tops.append(step.to.y)
            elif step.pos is not None:
                tops.append(step.pos.y)
            elif step.height is not None:
                tops.append(step.height)
        return max(tops, default=0)

    def _check_proportions(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis]):
        planned = analysis.dimensions if analysis else None
        if planned is None:
            return 1.0, []

        s = self.scoring
        score, issues = 1.0, []
        for dim in ("width", "height", "depth"):
            want = getattr(planned, dim)
            got = getattr(blueprint.size, dim)
            if want <= 0:
                continue
            diff = abs(got - want) / want
            if diff > s.proportion_tolerance:
                issues.append(self._warn(
                    IssueCode.QUALITY_PROPORTIONS,
                    f"{dim.capitalize()} mismatch: planned {want}, got {got} ({diff * 100:.0f}% difference)",
                ))
                score *= s.proportion_penalty
        return score, issues

    def _check_palette(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis]):
        s = self.scoring
        palette = blueprint.palette_blocks()
        used = blueprint.used_blocks()
        score, issues = 1.0, []

        for block in dict.fromkeys(palette):
            if block not in used:
                issues.append(self._warn(IssueCode.QUALITY_PALETTE, f"Palette block '{block}' is not used in blueprint"))
                score *= s.unused_palette_penalty

        for block in used:
            if block not in palette:
                issues.append(self._warn(IssueCode.QUALITY_PALETTE, f"Block '{block}' used but not in palette"))
                score *= s.undeclared_block_penalty

        return score, issues

    @staticmethod
    def _is_organic(blueprint: Blueprint, analysis: Optional[BuildAnalysis]) -> bool:
        style = (analysis.route.style if analysis and analysis.route else "").lower()
        if any(hint in style for hint in ORGANIC_STYLE_HINTS):
            return True
        features = {str(f).lower() for f in (analysis.features if analysis else [])}
        if features & ORGANIC_FEATURES:
            return True
        return any("tree" in step.op.value or "foliage" in step.op.value for step in blueprint.steps)

    def _warn(self, code: IssueCode, message: str) -> ValidationIssue:
        return self._issue(code, Severity.WARNING, message)
