"""Organic quality checks: keep trees from looking like geometry primitives.

Perfect spheres of leaves and perfect cylinders of logs read as artificial.
fix_tree_quality() rewrites those into offset spheres and a tapered trunk;
the orchestrator applies it once and re-checks.
"""

from typing import Callable, Optional

import structlog
from pydantic import BaseModel, Field

from buildguard.config import ScoringConfig
from buildguard.models.blueprint import Blueprint, Size
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import OperationKind as K

logger = structlog.get_logger()

ORGANIC_BUILD_TYPES = frozenset({"tree", "plant", "organic", "flora", "vegetation"})
UNNATURAL_OPS = frozenset({K.WE_SPHERE, K.WE_CYLINDER, K.WE_PYRAMID})
SMALL_TREE_HEIGHT = 15


class OrganicCheck(BaseModel):
    passed: bool
    reason: str = ""
    suggestion: Optional[str] = None


class OrganicQualityResult(BaseModel):
    valid: bool
    score: float
    checks: dict[str, OrganicCheck] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)


def is_organic_build(build_type: Optional[str]) -> bool:
    return (build_type or "").lower() in ORGANIC_BUILD_TYPES


def _is_leaf(block: Optional[str]) -> bool:
    return bool(block) and ("leaves" in block or "leaf" in block)


def _is_log(block: Optional[str]) -> bool:
    return bool(block) and ("log" in block or "trunk" in block)


# ── Checks ──

def check_trunk_taper(blueprint: Blueprint) -> OrganicCheck:
    trunk_steps = [s for s in blueprint.steps if _is_log(blueprint.resolve_block(s.block))]
    if len(trunk_steps) > 1:
        return OrganicCheck(passed=True, reason="Multiple trunk sections suggest taper")
    if blueprint.size.height <= SMALL_TREE_HEIGHT:
        return OrganicCheck(passed=True, reason="Small tree - uniform trunk acceptable")
    return OrganicCheck(passed=False, reason="Large tree should have trunk taper/branching")


def check_canopy_asymmetry(blueprint: Blueprint) -> OrganicCheck:
    for step in blueprint.steps:
        if step.op == K.WE_SPHERE and _is_leaf(blueprint.resolve_block(step.block)):
            return OrganicCheck(passed=False, reason="Perfect sphere canopies look unnatural")
    return OrganicCheck(passed=True, reason="Canopy structure acceptable")


def check_unnatural_geometry(blueprint: Blueprint) -> OrganicCheck:
    for step in blueprint.steps:
        block = blueprint.resolve_block(step.block) or ""
        if step.op in UNNATURAL_OPS and ("leaves" in block or "leaf" in block or "log" in block):
            return OrganicCheck(
                passed=False,
                reason=f"{step.op.value} creates unnatural shapes for {block}",
                suggestion="Use we_fill with multiple sections for natural variation",
            )
    return OrganicCheck(passed=True, reason="No unnatural geometry for organic parts")


def check_leaf_variation(blueprint: Blueprint) -> OrganicCheck:
    leaves = {b for b in blueprint.palette_blocks() if _is_leaf(b)}
    leaves.update(b for b in blueprint.used_blocks() if _is_leaf(b))
    return OrganicCheck(
        passed=True,
        suggestion="Consider using multiple leaf variants for texture" if len(leaves) == 1 else None,
    )


TREE_QUALITY_CHECKS: dict[str, tuple[Callable[[Blueprint], OrganicCheck], IssueCode]] = {
    "has_trunk_taper": (check_trunk_taper, IssueCode.ORGANIC_NO_TRUNK_TAPER),
    "has_canopy_asymmetry": (check_canopy_asymmetry, IssueCode.ORGANIC_SYMMETRIC_CANOPY),
    "no_unnatural_geometry": (check_unnatural_geometry, IssueCode.ORGANIC_UNNATURAL_GEOMETRY),
    "has_leaf_variation": (check_leaf_variation, IssueCode.ORGANIC_NO_LEAF_VARIATION),
}


def validate_tree_quality(blueprint: Blueprint, scoring: Optional[ScoringConfig] = None) -> OrganicQualityResult:
    """Run every tree check; each failure costs a fixed penalty off 1.0."""
    scoring = scoring or ScoringConfig()
    result = OrganicQualityResult(valid=True, score=1.0)
    failed: list[tuple[IssueCode, OrganicCheck]] = []

    for check_name, (check, code) in TREE_QUALITY_CHECKS.items():
        outcome = check(blueprint)
        result.checks[check_name] = outcome
        if not outcome.passed:
            failed.append((code, outcome))
            result.score -= scoring.organic_check_penalty
        if outcome.suggestion:
            result.suggestions.append(outcome.suggestion)

    result.score = max(0.0, result.score)
    result.valid = result.score >= scoring.organic_min_score

    # Failures only block when the total drops under the minimum.
    severity = Severity.WARNING if result.valid else Severity.ERROR
    for code, outcome in failed:
        result.issues.append(ValidationIssue(
            code=code, severity=severity, message=f"Organic quality: {outcome.reason}", suggestion=outcome.suggestion,
        ))
    return result


# ── Auto-fix ──

def _canopy_spheres(step: dict) -> list[dict]:
    center = step.get("center") or step.get("pos") or step.get("base") or {"x": 0, "y": 0, "z": 0}
    radius = step.get("radius") or 3
    cx, cy, cz = center["x"], center["y"], center["z"]
    shift_x, shift_z = max(1, radius // 2), max(1, radius // 3)
    small = max(1, radius - 2)

    spheres = []
    for (dx, dy, dz), r in (
        ((0, 0, 0), max(2, radius - 1)),
        ((shift_x, -1, shift_z), small),
        ((-shift_x, 1, -shift_z), small),
    ):
        x, y, z = cx + dx, cy + dy, cz + dz
        spheres.append({
            "op": K.SPHERE.value,
            "block": step["block"],
            "center": {"x": x, "y": y, "z": z},
            "radius": r,
            "fallback": {
                "op": K.FILL.value,
                "block": step["block"],
                "from": {"x": x - r, "y": y - 1, "z": z - r},
                "to": {"x": x + r, "y": y + 1, "z": z + r},
            },
        })
    return spheres


def _tapered_trunk(step: dict) -> list[dict]:
    base = step.get("base") or step.get("pos") or {"x": 0, "y": 0, "z": 0}
    height = step.get("height") or 5
    bx, by, bz = base["x"], base["y"], base["z"]
    sections = (
        ({"x": bx - 1, "y": by, "z": bz - 1}, {"x": bx + 1, "y": by + 2, "z": bz + 1}),
        ({"x": bx, "y": by + 2, "z": bz}, {"x": bx, "y": by + height, "z": bz}),
    )
    return [
        {
            "op": K.WE_FILL.value,
            "block": step["block"],
            "from": lo,
            "to": hi,
            "fallback": {"op": K.FILL.value, "block": step["block"], "from": lo, "to": hi},
        }
        for lo, hi in sections
    ]


def _clamp_point(point: dict, size: Size) -> dict:
    return {
        "x": min(max(point["x"], 0), size.width - 1),
        "y": min(max(point["y"], 0), size.height - 1),
        "z": min(max(point["z"], 0), size.depth - 1),
    }


def _fit_to_size(step: dict, size: Size) -> dict:
    """Clamp a generated step (and its fallback) into [0, size) on every axis."""
    step = dict(step)
    if "center" in step and "radius" in step:
        center = _clamp_point(step["center"], size)
        room = min(
            center["x"], center["z"], size.width - 1 - center["x"], size.depth - 1 - center["z"],
        )
        step["center"] = center
        step["radius"] = max(1, min(step["radius"], room))
    for key in ("from", "to", "base", "pos"):
        if key in step:
            step[key] = _clamp_point(step[key], size)
    if isinstance(step.get("fallback"), dict):
        step["fallback"] = _fit_to_size(step["fallback"], size)
    return step


def fix_tree_quality(blueprint: Blueprint) -> Blueprint:
    """Return a new blueprint with leaf spheres split up and log cylinders tapered.

    Generated coordinates are clamped into the declared size, and sphere radii
    shrink to stay inside the horizontal footprint.
    """
    payload = blueprint.to_payload()
    steps = []
    rewritten = 0

    for raw, step in zip(payload["steps"], blueprint.steps):
        block = blueprint.resolve_block(step.block)
        if step.op == K.WE_SPHERE and _is_leaf(block):
            steps.extend(_fit_to_size(s, blueprint.size) for s in _canopy_spheres({**raw, "block": block}))
            rewritten += 1
        elif step.op == K.WE_CYLINDER and _is_log(block):
            steps.extend(_fit_to_size(s, blueprint.size) for s in _tapered_trunk({**raw, "block": block}))
            rewritten += 1
        else:
            steps.append(raw)

    if not rewritten:
        return blueprint

    logger.info("organic_auto_fix", rewritten=rewritten, steps_before=len(blueprint.steps), steps_after=len(steps))
    payload["steps"] = steps
    return Blueprint.model_validate(payload)
