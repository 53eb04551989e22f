"""Blueprint normaliser: fixes known-safe shape problems in raw generator output.

Runs on the raw dict before it is parsed into a Blueprint:
    - strips the minecraft: namespace and maps common block aliases
    - coerces string booleans for `hollow`
    - resolves $token placeholders against a mapping palette
    - shifts the build so it starts at x=0, z=0 and never goes negative

Unresolved placeholders are reported as errors; the orchestrator treats them
as terminal because they point at a generation bug.
"""

import copy
import re
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from buildguard.models.issues import IssueCode, Severity, ValidationIssue

logger = structlog.get_logger()

BLOCK_ALIASES: dict[str, str] = {
    # Leaf variants
    "oak_leaf": "oak_leaves",
    "spruce_leaf": "spruce_leaves",
    "birch_leaf": "birch_leaves",
    "jungle_leaf": "jungle_leaves",
    "acacia_leaf": "acacia_leaves",
    "dark_oak_leaf": "dark_oak_leaves",
    "cherry_leaf": "cherry_leaves",
    "mangrove_leaf": "mangrove_leaves",
    "azalea_leaf": "azalea_leaves",
    "flowering_azalea_leaf": "flowering_azalea_leaves",
    # Typos and shortcuts
    "cobble": "cobblestone",
    "stone_brick": "stone_bricks",
    "oakplanks": "oak_planks",
    "oak_plank": "oak_planks",
    "spruce_plank": "spruce_planks",
    "birch_plank": "birch_planks",
    "jungle_plank": "jungle_planks",
    "acacia_plank": "acacia_planks",
    "dark_oak_plank": "dark_oak_planks",
    "mangrove_plank": "mangrove_planks",
    "cherry_plank": "cherry_planks",
    "bamboo_plank": "bamboo_planks",
    "glass_block": "glass",
    # Generic names models like to use
    "grass": "grass_block",
    "wood": "oak_log",
    "planks": "oak_planks",
    "brick": "bricks",
    "leaves": "oak_leaves",
    "log": "oak_log",
    "wool": "white_wool",
    "concrete": "white_concrete",
    "glass_panes": "glass_pane",
    # Singular/plural
    "nether_brick": "nether_bricks",
    "red_nether_brick": "red_nether_bricks",
    "deepslate_brick": "deepslate_bricks",
    "deepslate_tile": "deepslate_tiles",
    "prismarine_brick": "prismarine_bricks",
    "mud_brick": "mud_bricks",
    "quartz": "quartz_block",
    "quartz_brick": "quartz_bricks",
    "end_stone_brick": "end_stone_bricks",
    "polished_blackstone_brick": "polished_blackstone_bricks",
}

PLACEHOLDER_PATTERN = re.compile(r"^\$\w+$")

COORD_KEYS = ("from", "to", "pos", "base", "center")
BLOCK_KEYS = ("block", "fromBlock", "toBlock")


class NormalizationResult(BaseModel):
    blueprint: Any
    changes: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)


def normalize_block_name(name: Any) -> Any:
    """Strip the namespace and apply the alias table; non-strings pass through."""
    if not name or not isinstance(name, str):
        return name
    stripped = name.removeprefix("minecraft:")
    return BLOCK_ALIASES.get(stripped.lower(), stripped)


def coerce_hollow(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and bool(PLACEHOLDER_PATTERN.match(value))


def resolve_placeholder(token: str, palette: Any) -> Optional[str]:
    """Resolve $key from a mapping palette. List palettes cannot resolve tokens."""
    if not isinstance(palette, dict):
        return None
    value = palette.get(token[1:] if token.startswith("$") else token)
    return value or None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def absolute_bounds(steps: list) -> Optional[tuple[float, float, float, float, float, float]]:
    """Min/max corner over every coordinate, radius and size parameter of raw steps."""
    xs, ys, zs = [], [], []

    def add(x, y, z):
        if _is_number(x):
            xs.append(x)
        if _is_number(y):
            ys.append(y)
        if _is_number(z):
            zs.append(z)

    for step in steps:
        if not isinstance(step, dict):
            continue
        for key in COORD_KEYS:
            c = step.get(key)
            if isinstance(c, dict):
                add(c.get("x"), c.get("y"), c.get("z"))

        radius = step.get("radius")
        center = step.get("center") or step.get("base")
        if _is_number(radius) and radius > 0 and isinstance(center, dict):
            cx, cy, cz = center.get("x"), center.get("y"), center.get("z")
            height = step.get("height")
            if _is_number(cx) and _is_number(cy) and _is_number(cz):
                if isinstance(step.get("center"), dict) or not _is_number(height):
                    add(cx - radius, cy - radius, cz - radius)
                    add(cx + radius, cy + radius, cz + radius)
                else:
                    # base-anchored shapes grow upward from base.y
                    add(cx - radius, cy, cz - radius)
                    add(cx + radius, cy + max(1, height) - 1, cz + radius)

        size = step.get("size")
        anchor = step.get("from") or step.get("pos") or step.get("base")
        if isinstance(size, dict) and isinstance(anchor, dict):
            sx = size.get("x", size.get("width"))
            sy = size.get("y", size.get("height"))
            sz = size.get("z", size.get("depth"))
            ax, ay, az = anchor.get("x"), anchor.get("y"), anchor.get("z")
            if all(_is_number(v) for v in (sx, sy, sz, ax, ay, az)):
                add(ax + sx - 1, ay + sy - 1, az + sz - 1)

    if not xs or not ys or not zs:
        return None
    return (min(xs), min(ys), min(zs), max(xs), max(ys), max(zs))


def shift_coordinates(steps: list, dx: int, dy: int, dz: int) -> None:
    """Translate every coordinate parameter of raw steps (and their fallbacks) in place."""
    for step in steps:
        if not isinstance(step, dict):
            continue
        targets = [step]
        if isinstance(step.get("fallback"), dict):
            targets.append(step["fallback"])
        for target in targets:
            for key in COORD_KEYS:
                c = target.get(key)
                if not isinstance(c, dict):
                    continue
                for axis, delta in (("x", dx), ("y", dy), ("z", dz)):
                    if _is_number(c.get(axis)):
                        c[axis] += delta


class BlueprintNormalizer:
    """Deep-copies a raw blueprint and applies the known-safe fixes."""

    def __init__(self, auto_center: bool = True):
        self.auto_center = auto_center

    def normalize(self, raw: dict) -> NormalizationResult:
        if not isinstance(raw, dict):
            return NormalizationResult(
                blueprint=raw,
                errors=[ValidationIssue(
                    code=IssueCode.SCHEMA_INVALID_TYPE,
                    severity=Severity.ERROR,
                    message="Blueprint must be a JSON object",
                )],
            )

        bp = copy.deepcopy(raw)
        result = NormalizationResult(blueprint=bp)

        self._normalize_palette(bp, result)

        steps = bp.get("steps")
        if isinstance(steps, list):
            for i, step in enumerate(steps):
                if not isinstance(step, dict):
                    continue
                self._normalize_step(step, bp.get("palette"), f"Step {i}", i, result)
                if isinstance(step.get("fallback"), dict):
                    self._normalize_step(step["fallback"], bp.get("palette"), f"Step {i} fallback", i, result)

            if self.auto_center:
                self._center(bp, steps, result)

        if result.changes:
            logger.debug("blueprint_normalized", changes=len(result.changes), errors=len(result.errors))
        return result

    def _normalize_palette(self, bp: dict, result: NormalizationResult) -> None:
        palette = bp.get("palette")
        if isinstance(palette, list):
            for i, original in enumerate(palette):
                normalized = normalize_block_name(original)
                if normalized != original:
                    result.changes.append(f"Palette[{i}]: '{original}' -> '{normalized}'")
                    palette[i] = normalized
        elif isinstance(palette, dict):
            for key, original in palette.items():
                normalized = normalize_block_name(original)
                if normalized != original:
                    result.changes.append(f"Palette.{key}: '{original}' -> '{normalized}'")
                    palette[key] = normalized

    def _normalize_step(self, step: dict, palette: Any, label: str, index: int, result: NormalizationResult) -> None:
        for key in BLOCK_KEYS:
            original = step.get(key)
            if not original:
                continue
            if is_placeholder(original):
                resolved = resolve_placeholder(original, palette)
                if resolved:
                    resolved = normalize_block_name(resolved)
                    result.changes.append(f"{label} {key}: '{original}' -> '{resolved}' (resolved from palette)")
                    step[key] = resolved
                else:
                    result.errors.append(ValidationIssue(
                        code=IssueCode.PLACEHOLDER_UNRESOLVED,
                        severity=Severity.ERROR,
                        message=f"{label}: Unresolved placeholder '{original}' not found in palette",
                        step=index,
                        field=key,
                    ))
            else:
                normalized = normalize_block_name(original)
                if normalized != original:
                    result.changes.append(f"{label} {key}: '{original}' -> '{normalized}'")
                    step[key] = normalized

        if "hollow" in step and step["hollow"] is not None:
            original = step["hollow"]
            coerced = coerce_hollow(original)
            if coerced is not original:
                result.changes.append(f"{label} hollow: '{original}' -> {coerced}")
                step["hollow"] = coerced

    def _center(self, bp: dict, steps: list, result: NormalizationResult) -> None:
        size = bp.get("size") if isinstance(bp.get("size"), dict) else None

        bounds = absolute_bounds(steps)
        if bounds is not None:
            min_x, _, min_z, max_x, _, max_z = bounds
            shift_x, shift_z = int(-min_x), int(-min_z)
            # Y is left alone: grounding is the spatial validator's job.
            if shift_x or shift_z:
                result.changes.append(f"Auto-centering: shifting horizontally by ({shift_x}, {shift_z})")
                shift_coordinates(steps, shift_x, 0, shift_z)
                if size is not None:
                    size["width"] = int(max_x - min_x) + 1
                    size["depth"] = int(max_z - min_z) + 1

        bounds = absolute_bounds(steps)
        if bounds is not None and min(bounds[:3]) < 0:
            shift_x, shift_y, shift_z = (int(-v) if v < 0 else 0 for v in bounds[:3])
            result.changes.append(
                f"Safety shift: adjusting by ({shift_x}, {shift_y}, {shift_z}) to prevent negative coordinates"
            )
            shift_coordinates(steps, shift_x, shift_y, shift_z)
            if size is not None:
                for key, delta in (("width", shift_x), ("height", shift_y), ("depth", shift_z)):
                    if _is_number(size.get(key)):
                        size[key] += delta
