"""Deterministic fallback strategies for envelopes the model could not repair.

Each strategy takes an envelope and returns a smaller replacement, or None
when it does not apply. A replacement never grows along any axis or in
operation count, and always shrinks one of them.
"""

import math
from typing import Optional

import structlog

from buildguard.envelope_builder import iter_voxels, rebuild_envelope
from buildguard.models.analysis import BlueprintKind, BuildPass
from buildguard.models.blueprint import Vec3
from buildguard.models.envelope import BoundsRange, Envelope
from buildguard.models.repair import RepairStrategy

logger = structlog.get_logger()

# Ops dropped by simplify_passes; everything else is shell.
DETAIL_OPS = frozenset({"window_strip", "door", "lantern", "flower", "painting", "bed", "chair", "table"})

COORD_KEYS = ("from", "to", "pos", "base", "center")
DIMENSION_KEYS = ("height", "radius", "width", "depth", "peakHeight")

# Build types that must stay in their current representation.
KIND_SWITCH_LOCKED: dict[BlueprintKind, frozenset[str]] = {
    BlueprintKind.VOXEL_SPARSE: frozenset({"pixel_art", "statue"}),
    BlueprintKind.OPS_SCRIPT: frozenset({"house", "castle", "infrastructure"}),
}


def operation_count(envelope: Envelope) -> int:
    """Steps for ops_script payloads, voxels for voxel_sparse ones."""
    if BlueprintKind(envelope.kind) == BlueprintKind.OPS_SCRIPT:
        steps = envelope.payload.get("steps")
        return len(steps) if isinstance(steps, list) else 0
    return sum(1 for _ in iter_voxels(envelope.payload))


def is_reduction(before: Envelope, after: Envelope) -> bool:
    """True when nothing grew and the bounds or the operation count shrank."""
    dims_before = before.bounds.local.dimensions()
    dims_after = after.bounds.local.dimensions()
    ops_before, ops_after = operation_count(before), operation_count(after)

    if any(a > b for a, b in zip(dims_after, dims_before)) or ops_after > ops_before:
        return False
    return dims_after != dims_before or ops_after < ops_before


# ── Scale reduction ──

def _scale_value(value, factor: float, ceiling: int):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return min(math.floor(value * factor), ceiling)
    return value


def _scale_step(step: dict, factor: float, new_max: Vec3) -> dict:
    scaled = dict(step)

    for key in COORD_KEYS:
        coord = scaled.get(key)
        if isinstance(coord, dict):
            scaled[key] = {
                **coord,
                "x": _scale_value(coord.get("x"), factor, new_max.x),
                "y": _scale_value(coord.get("y"), factor, new_max.y),
                "z": _scale_value(coord.get("z"), factor, new_max.z),
            }

    if isinstance(scaled.get("size"), dict):
        scaled["size"] = {
            k: max(1, math.floor(v * factor)) if isinstance(v, (int, float)) else v
            for k, v in scaled["size"].items()
        }

    for key in DIMENSION_KEYS:
        value = scaled.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            scaled[key] = max(1, math.floor(value * factor))

    if isinstance(scaled.get("fallback"), dict):
        scaled["fallback"] = _scale_step(scaled["fallback"], factor, new_max)
    return scaled


def _scale_voxels(payload: dict, factor: float, new_max: Vec3) -> dict:
    seen = set()
    voxels = []
    for x, y, z, block in iter_voxels(payload):
        cell = (
            min(math.floor(x * factor), new_max.x),
            min(math.floor(y * factor), new_max.y),
            min(math.floor(z * factor), new_max.z),
        )
        if cell in seen:
            continue
        seen.add(cell)
        voxels.append({"x": cell[0], "y": cell[1], "z": cell[2], "block": block})
    return {"palette": payload.get("palette", {}), "voxels": voxels}


def scale_reduction(envelope: Envelope, factor: float = 0.5) -> Optional[Envelope]:
    """Shrink the bounds and every coordinate, size and dimension by `factor`."""
    local = envelope.bounds.local
    new_max = Vec3(
        x=max(local.min.x, math.floor(local.max.x * factor)),
        y=max(local.min.y, math.floor(local.max.y * factor)),
        z=max(local.min.z, math.floor(local.max.z * factor)),
    )
    if new_max == local.max:
        return None

    kind = BlueprintKind(envelope.kind)
    if kind == BlueprintKind.OPS_SCRIPT:
        payload = {
            **envelope.payload,
            "steps": [
                _scale_step(step, factor, new_max) if isinstance(step, dict) else step
                for step in envelope.payload.get("steps") or []
            ],
        }
    elif kind == BlueprintKind.VOXEL_SPARSE:
        payload = _scale_voxels(envelope.payload, factor, new_max)
    else:
        return None

    return rebuild_envelope(
        envelope,
        payload,
        bounds=BoundsRange(min=local.min, max=new_max),
        metadata_update={"fallback": {
            "strategy": RepairStrategy.SCALE_REDUCTION.value,
            "original_scale": 1.0,
            "new_scale": factor,
        }},
    )


# ── Simplify passes ──

def simplify_passes(envelope: Envelope) -> Optional[Envelope]:
    """Keep only the shell pass: drop decorative and furniture operations."""
    if BlueprintKind(envelope.kind) != BlueprintKind.OPS_SCRIPT:
        return None

    steps = envelope.payload.get("steps") or []
    kept = [s for s in steps if not (isinstance(s, dict) and s.get("op") in DETAIL_OPS)]
    if len(kept) == len(steps):
        return None

    return rebuild_envelope(
        envelope,
        {**envelope.payload, "steps": kept},
        passes=[BuildPass.SHELL],
        metadata_update={"fallback": {
            "strategy": RepairStrategy.SIMPLIFY_PASSES.value,
            "removed_steps": len(steps) - len(kept),
        }},
    )


# ── Kind switch ──

def _ops_to_voxels(envelope: Envelope) -> Optional[dict]:
    """Single-block ops collapse to voxels; later writes to a cell win."""
    cells: dict[tuple[int, int, int], object] = {}
    for step in envelope.payload.get("steps") or []:
        if not isinstance(step, dict) or step.get("op") != "set" or not isinstance(step.get("pos"), dict):
            return None
        pos = step["pos"]
        cells[(pos.get("x"), pos.get("y"), pos.get("z"))] = step.get("block")

    voxels = [{"x": x, "y": y, "z": z, "block": block} for (x, y, z), block in cells.items()]
    return {"palette": envelope.payload.get("palette", {}), "voxels": voxels}


def _voxels_to_ops(envelope: Envelope) -> dict:
    """Runs of the same block along x become one fill."""
    cells = sorted(iter_voxels(envelope.payload), key=lambda v: (v[1], v[2], v[0]))
    steps = []
    run = None  # [x_start, x_end, y, z, block]

    def flush():
        x0, x1, y, z, block = run
        if x0 == x1:
            steps.append({"op": "set", "pos": {"x": x0, "y": y, "z": z}, "block": block})
        else:
            steps.append({"op": "fill", "from": {"x": x0, "y": y, "z": z}, "to": {"x": x1, "y": y, "z": z}, "block": block})

    for x, y, z, block in cells:
        if run and run[2] == y and run[3] == z and run[4] == block and run[1] == x - 1:
            run[1] = x
            continue
        if run:
            flush()
        run = [x, x, y, z, block]
    if run:
        flush()

    palette = sorted({s["block"] for s in steps if isinstance(s["block"], str)})
    return {"palette": palette, "steps": steps}


def kind_switch(envelope: Envelope) -> Optional[Envelope]:
    """Convert between ops_script and voxel_sparse when the build type allows it."""
    kind = BlueprintKind(envelope.kind)
    if envelope.build_type in KIND_SWITCH_LOCKED.get(kind, frozenset()):
        logger.debug("kind_switch_locked", build_type=envelope.build_type, kind=kind.value)
        return None

    if kind == BlueprintKind.OPS_SCRIPT:
        payload, new_kind = _ops_to_voxels(envelope), BlueprintKind.VOXEL_SPARSE
    elif kind == BlueprintKind.VOXEL_SPARSE:
        payload, new_kind = _voxels_to_ops(envelope), BlueprintKind.OPS_SCRIPT
    else:
        return None
    if payload is None:
        return None

    switched = rebuild_envelope(
        envelope,
        payload,
        kind=new_kind,
        metadata_update={"fallback": {
            "strategy": RepairStrategy.KIND_SWITCH.value,
            "from_kind": kind.value,
            "to_kind": new_kind.value,
        }},
    )
    return switched if is_reduction(envelope, switched) else None
