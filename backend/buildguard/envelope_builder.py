"""Envelope builder and validator.

Wraps a blueprint (or a sparse voxel payload) into a versioned Envelope with
bounds, block estimates and safety ceilings, and validates envelopes received
from elsewhere. Nothing here mutates its input.

Usage:
    envelope = create_envelope(blueprint, route=route_prompt(prompt))
    check = validate_envelope(envelope)
    if not check.valid:
        # hand check.errors to the repair engine
"""

import uuid
from typing import Iterator, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from buildguard.config import SafetyLimits
from buildguard.models.analysis import BlueprintKind, BuildPass, RouteDecision
from buildguard.models.blueprint import Blueprint, Step, Vec3
from buildguard.models.envelope import (
    ENVELOPE_VERSION,
    Bounds,
    BoundsRange,
    Envelope,
    EnvelopeMetadata,
    EnvelopeTags,
    EnvelopeValidation,
    Estimates,
    SafetyInfo,
    ValidationInfo,
)
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import OperationKind, is_world_edit

logger = structlog.get_logger()

# Cost model used for time estimates
WE_COMMANDS_PER_OP = 3      # pos1, pos2, operation
WE_COMMAND_MS = 400
VANILLA_BLOCK_MS = 10
DEFAULT_WE_BLOCKS = 100
OTHER_OP_BLOCKS = 10

_VOLUME_ESTIMATED_OPS = frozenset({OperationKind.FILL, OperationKind.HOLLOW_BOX})


def estimate_from_steps(steps: list[Step]) -> Estimates:
    """Single pass over the steps, splitting world-edit scale work from vanilla placements."""
    block_count = 0
    we_ops = 0
    vanilla_blocks = 0

    for step in steps:
        if is_world_edit(step.op) or step.op in _VOLUME_ESTIMATED_OPS:
            we_ops += 1
            box = step.bounds() if step.from_ is not None and step.to is not None else None
            if box is not None:
                block_count += box.volume
            elif step.extent() is not None:
                sx, sy, sz = step.extent()
                block_count += max(1, sx) * max(1, sy) * max(1, sz)
            else:
                block_count += DEFAULT_WE_BLOCKS
        elif step.op in (OperationKind.SET, OperationKind.LINE):
            vanilla_blocks += 1
            block_count += 1
        else:
            vanilla_blocks += OTHER_OP_BLOCKS
            block_count += OTHER_OP_BLOCKS

    return Estimates(
        block_count=block_count,
        we_command_count=we_ops * WE_COMMANDS_PER_OP,
        vanilla_block_count=vanilla_blocks,
        estimated_time_ms=we_ops * WE_COMMANDS_PER_OP * WE_COMMAND_MS + vanilla_blocks * VANILLA_BLOCK_MS,
    )


def compute_world_bounds(local: BoundsRange, origin: Vec3) -> BoundsRange:
    return BoundsRange(
        min=Vec3(x=origin.x + local.min.x, y=origin.y + local.min.y, z=origin.z + local.min.z),
        max=Vec3(x=origin.x + local.max.x, y=origin.y + local.max.y, z=origin.z + local.max.z),
    )


def _local_bounds(width: int, height: int, depth: int) -> BoundsRange:
    return BoundsRange(min=Vec3(x=0, y=0, z=0), max=Vec3(x=width - 1, y=height - 1, z=depth - 1))


def _safety(limits: SafetyLimits) -> SafetyInfo:
    return SafetyInfo(
        max_blocks=limits.max_blocks,
        max_height=min(limits.max_height, 256),
        max_width=limits.max_width,
        max_depth=limits.max_depth,
    )


def create_envelope(
    blueprint: Blueprint,
    route: Optional[RouteDecision] = None,
    origin: Optional[Vec3] = None,
    limits: Optional[SafetyLimits] = None,
    prompt: Optional[str] = None,
    source: str = "v1",
) -> Envelope:
    """Wrap an ops-script blueprint into an envelope.

    Local bounds are derived from the declared size, world bounds add the origin.
    """
    limits = limits or SafetyLimits()
    origin = origin or Vec3(x=0, y=0, z=0)
    build_type = (route.build_type if route else None) or blueprint.build_type or "generic"

    local = _local_bounds(blueprint.size.width, blueprint.size.height, blueprint.size.depth)
    payload = {
        "palette": blueprint.to_payload()["palette"],
        "steps": [s.model_dump(mode="json", by_alias=True, exclude_none=True) for s in blueprint.steps],
    }
    if blueprint.build_type:
        payload["buildType"] = blueprint.build_type

    return Envelope(
        blueprint_version=ENVELOPE_VERSION,
        envelope_id=str(uuid.uuid4()),
        kind=BlueprintKind.OPS_SCRIPT,
        tags=EnvelopeTags(
            build_type=[build_type],
            style=[route.style if route else "default"],
            passes=list(route.passes) if route else [BuildPass.SHELL],
        ),
        origin=origin,
        bounds=Bounds(local=local, world=compute_world_bounds(local, origin)),
        estimates=estimate_from_steps(blueprint.steps),
        safety=_safety(limits),
        validation=ValidationInfo(profile=route.profile_id if route else build_type, validated=False),
        payload=payload,
        metadata=EnvelopeMetadata(source=source, prompt=prompt or None),
    )


def create_voxel_envelope(
    voxels: list[dict],
    palette: Union[dict, list],
    size: tuple[int, int, int],
    route: Optional[RouteDecision] = None,
    origin: Optional[Vec3] = None,
    limits: Optional[SafetyLimits] = None,
    prompt: Optional[str] = None,
) -> Envelope:
    """Wrap a sparse voxel list ({x, y, z, block}) into a voxel_sparse envelope."""
    limits = limits or SafetyLimits()
    origin = origin or Vec3(x=0, y=0, z=0)
    build_type = route.build_type if route else "generic"
    local = _local_bounds(*size)

    return Envelope(
        envelope_id=str(uuid.uuid4()),
        kind=BlueprintKind.VOXEL_SPARSE,
        tags=EnvelopeTags(
            build_type=[build_type],
            style=[route.style if route else "default"],
            passes=list(route.passes) if route else [BuildPass.SHELL],
        ),
        origin=origin,
        bounds=Bounds(local=local, world=compute_world_bounds(local, origin)),
        estimates=Estimates(
            block_count=len(voxels),
            vanilla_block_count=len(voxels),
            estimated_time_ms=len(voxels) * VANILLA_BLOCK_MS,
        ),
        safety=_safety(limits),
        validation=ValidationInfo(profile=route.profile_id if route else build_type),
        payload={"palette": palette, "voxels": list(voxels)},
        metadata=EnvelopeMetadata(source="v1", prompt=prompt or None),
    )


def _issue(code: IssueCode, message: str, field: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(code=code, severity=Severity.ERROR, message=message, field=field)


def validate_envelope(
    envelope: Union[Envelope, dict],
    limits: Optional[SafetyLimits] = None,
) -> EnvelopeValidation:
    """Validate structure first, then the semantic rules.

    Structural failures short-circuit: semantic rules assume a well-formed envelope.
    """
    limits = limits or SafetyLimits()

    if isinstance(envelope, dict):
        try:
            envelope = Envelope.model_validate(envelope)
        except PydanticValidationError as e:
            errors = [
                _issue(
                    IssueCode.SCHEMA_ENVELOPE,
                    f"Envelope {'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}",
                    field=".".join(str(p) for p in err["loc"]),
                )
                for err in e.errors()
            ]
            return EnvelopeValidation(valid=False, errors=errors)

    errors = _semantic_errors(envelope, limits)
    return EnvelopeValidation(valid=not errors, errors=errors, envelope=envelope)


def _semantic_errors(envelope: Envelope, limits: SafetyLimits) -> list[ValidationIssue]:
    errors = []
    payload = envelope.payload

    if envelope.kind == BlueprintKind.OPS_SCRIPT and not isinstance(payload.get("steps"), list):
        errors.append(_issue(
            IssueCode.SCHEMA_PAYLOAD_MISMATCH,
            "ops_script kind requires payload.steps array",
            field="payload.steps",
        ))
    if envelope.kind == BlueprintKind.VOXEL_SPARSE and not payload.get("voxels") and not payload.get("layers"):
        errors.append(_issue(
            IssueCode.SCHEMA_PAYLOAD_MISMATCH,
            "voxel_sparse kind requires payload.voxels or payload.layers",
            field="payload",
        ))

    if envelope.bounds.local.is_inverted():
        errors.append(_issue(
            IssueCode.SCHEMA_INVALID_BOUNDS,
            "Local bounds min must be <= max in all dimensions",
            field="bounds.local",
        ))

    block_limit = min(limits.max_blocks, envelope.safety.max_blocks)
    if envelope.estimates.block_count > block_limit:
        errors.append(_issue(
            IssueCode.LIMIT_BLOCK_COUNT,
            f"Estimated block count {envelope.estimates.block_count} exceeds limit {block_limit}",
            field="estimates.blockCount",
        ))

    return errors


def iter_voxels(payload: dict) -> Iterator[tuple[int, int, int, Optional[str]]]:
    """Yield (x, y, z, block) for a voxel_sparse payload.

    Voxel blocks may be names or integer indexes into a list palette.
    Layers are {y, grid: [row strings along z], legend: {char: block}} slices.
    """
    palette = payload.get("palette") or {}

    def resolve(block):
        if isinstance(block, int) and isinstance(palette, list) and 0 <= block < len(palette):
            return palette[block]
        if isinstance(block, int) and isinstance(palette, dict):
            return palette.get(str(block), block)
        if isinstance(block, str) and block.startswith("$") and isinstance(palette, dict):
            return palette.get(block[1:], block)
        return block

    for v in payload.get("voxels") or []:
        yield int(v["x"]), int(v["y"]), int(v["z"]), resolve(v.get("block"))

    legend = payload.get("legend") or {}
    for index, layer in enumerate(payload.get("layers") or []):
        y = layer.get("y", index) if isinstance(layer, dict) else index
        rows = layer.get("grid", []) if isinstance(layer, dict) else layer
        layer_legend = layer.get("legend", legend) if isinstance(layer, dict) else legend
        for z, row in enumerate(rows):
            for x, cell in enumerate(row):
                if cell in (".", " ", None, ""):
                    continue
                yield x, y, z, resolve(layer_legend.get(cell, cell))


def extract_payload_for_builder(envelope: Envelope) -> dict:
    """Turn an envelope back into a {palette, steps, size} blueprint dict."""
    width, height, depth = envelope.bounds.local.dimensions()
    size = {"width": width, "height": height, "depth": depth}

    if envelope.kind == BlueprintKind.OPS_SCRIPT:
        out = {
            "palette": envelope.payload.get("palette", {}),
            "steps": envelope.payload.get("steps", []),
            "size": size,
        }
        if "buildType" in envelope.payload:
            out["buildType"] = envelope.payload["buildType"]
        return out

    if envelope.kind == BlueprintKind.VOXEL_SPARSE:
        steps = [
            {"op": "set", "pos": {"x": x, "y": y, "z": z}, "block": block}
            for x, y, z, block in iter_voxels(envelope.payload)
        ]
        palette = envelope.payload.get("palette", {})
        return {"palette": palette if isinstance(palette, dict) else list(palette), "steps": steps, "size": size}

    raise ValueError(f"Unsupported envelope kind: {envelope.kind}")


def rebuild_envelope(
    envelope: Envelope,
    payload: dict,
    bounds: Optional[BoundsRange] = None,
    metadata_update: Optional[dict] = None,
    passes: Optional[list[BuildPass]] = None,
    kind: Optional[BlueprintKind] = None,
) -> Envelope:
    """New envelope around a replacement payload.

    Version and id are preserved; kind is preserved unless a kind switch asks
    otherwise. The validation block is reset so the new payload must be re-checked.
    """
    local = bounds or envelope.bounds.local
    new_kind = kind or envelope.kind

    if new_kind == BlueprintKind.OPS_SCRIPT and isinstance(payload.get("steps"), list):
        try:
            steps = [Step.model_validate(s) for s in payload["steps"]]
            estimates = estimate_from_steps(steps)
        except PydanticValidationError:
            estimates = envelope.estimates
    elif new_kind == BlueprintKind.VOXEL_SPARSE:
        count = sum(1 for _ in iter_voxels(payload))
        estimates = Estimates(block_count=count, vanilla_block_count=count, estimated_time_ms=count * VANILLA_BLOCK_MS)
    else:
        estimates = envelope.estimates

    metadata = envelope.metadata or EnvelopeMetadata()
    if metadata_update:
        metadata = metadata.model_copy(update=metadata_update)

    update = {
        "kind": new_kind,
        "payload": payload,
        "bounds": Bounds(local=local, world=compute_world_bounds(local, envelope.origin)),
        "estimates": estimates,
        "validation": ValidationInfo(profile=envelope.validation.profile, validated=False),
        "metadata": metadata,
    }
    if passes is not None:
        update["tags"] = envelope.tags.model_copy(update={"passes": passes})

    rebuilt = envelope.model_copy(update=update)
    logger.debug("envelope_rebuilt", envelope_id=rebuilt.envelope_id, kind=rebuilt.kind)
    return rebuilt
