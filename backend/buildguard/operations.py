"""Operation Registry: the closed set of operation kinds and their parameter contracts.

Every validator, the envelope estimator and the repair fallbacks read from here.
OPERATION_REGISTRY is total over OperationKind: adding a kind without a contract
is a bug caught by the test suite.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


class OperationKind(str, Enum):
    """Every operation a blueprint step may use."""

    # Universal
    BOX = "box"
    WALL = "wall"
    OUTLINE = "outline"
    MOVE = "move"
    CURSOR_RESET = "cursor_reset"

    # Vanilla
    FILL = "fill"
    HOLLOW_BOX = "hollow_box"
    SET = "set"
    LINE = "line"
    WINDOW_STRIP = "window_strip"
    ROOF_GABLE = "roof_gable"
    ROOF_FLAT = "roof_flat"
    ROOF_HIP = "roof_hip"
    STAIRS = "stairs"
    SLAB = "slab"
    FENCE_CONNECT = "fence_connect"
    DOOR = "door"
    SPIRAL_STAIRCASE = "spiral_staircase"
    BALCONY = "balcony"
    PIXEL_ART = "pixel_art"
    THREE_D_LAYERS = "three_d_layers"

    # System
    SITE_PREP = "site_prep"

    # World-edit
    WE_FILL = "we_fill"
    WE_WALLS = "we_walls"
    WE_PYRAMID = "we_pyramid"
    WE_CYLINDER = "we_cylinder"
    WE_SPHERE = "we_sphere"
    WE_REPLACE = "we_replace"
    SPHERE = "sphere"
    CYLINDER = "cylinder"

    # Smart
    SMART_WALL = "smart_wall"
    SMART_FLOOR = "smart_floor"
    SMART_ROOF = "smart_roof"


class OperationType(str, Enum):
    UNIVERSAL = "universal"
    VANILLA = "vanilla"
    WORLDEDIT = "worldedit"
    SYSTEM = "system"
    SMART = "smart"


class StructuralRole(str, Enum):
    """Vertical-ordering role of an operation."""

    FOUNDATION = "foundation"
    FLOOR = "floor"
    WALL = "wall"
    ROOF = "roof"
    DETAIL = "detail"
    EXCLUDED = "excluded"
    OTHER = "other"


class CSDPhase(str, Enum):
    """Core / Structure / Detail build phase of an operation."""

    CORE = "core"
    STRUCTURE = "structure"
    DETAIL = "detail"
    EXCLUDED = "excluded"


class OperationContract(BaseModel):
    """Parameter contract and metadata for one operation kind."""

    required: tuple[str, ...] = ()
    required_one_of: tuple[tuple[str, ...], ...] = ()
    block_suffix: Optional[str] = None
    role: StructuralRole = StructuralRole.OTHER
    fallback: Optional[OperationKind] = None
    op_type: OperationType = OperationType.VANILLA
    avg_blocks: int = Field(default=10, description="Rough blocks placed per call")

    model_config = {"frozen": True}


K = OperationKind
R = StructuralRole
T = OperationType

_SIZED = (("size", "from", "to"),)

OPERATION_REGISTRY: dict[OperationKind, OperationContract] = {
    K.BOX: OperationContract(required=("block",), required_one_of=_SIZED, op_type=T.UNIVERSAL, avg_blocks=100),
    K.WALL: OperationContract(required=("block",), required_one_of=_SIZED, op_type=T.UNIVERSAL, avg_blocks=80),
    K.OUTLINE: OperationContract(required=("block",), required_one_of=_SIZED, op_type=T.UNIVERSAL, avg_blocks=40),
    K.MOVE: OperationContract(required=("offset",), role=R.EXCLUDED, op_type=T.UNIVERSAL, avg_blocks=0),
    K.CURSOR_RESET: OperationContract(role=R.EXCLUDED, op_type=T.UNIVERSAL, avg_blocks=0),

    K.FILL: OperationContract(required=("block", "from", "to"), role=R.FOUNDATION, avg_blocks=100),
    K.HOLLOW_BOX: OperationContract(required=("block", "from", "to"), role=R.WALL, avg_blocks=80),
    K.SET: OperationContract(required=("block", "pos"), role=R.DETAIL, avg_blocks=1),
    K.LINE: OperationContract(required=("block", "from", "to"), role=R.DETAIL, avg_blocks=10),
    K.WINDOW_STRIP: OperationContract(required=("block", "from", "to"), role=R.DETAIL, avg_blocks=5),
    K.ROOF_GABLE: OperationContract(required=("block", "from", "to", "peakHeight"), role=R.ROOF, avg_blocks=50),
    K.ROOF_FLAT: OperationContract(required=("block", "from", "to"), role=R.ROOF, avg_blocks=30),
    K.ROOF_HIP: OperationContract(required=("block", "from", "to"), role=R.ROOF, avg_blocks=60),
    K.STAIRS: OperationContract(required=("block", "pos"), block_suffix="stairs", role=R.DETAIL, avg_blocks=1),
    K.SLAB: OperationContract(required=("block", "pos"), block_suffix="slab", avg_blocks=1),
    K.FENCE_CONNECT: OperationContract(required=("block", "from", "to"), block_suffix="fence", avg_blocks=10),
    K.DOOR: OperationContract(required=("block", "pos"), block_suffix="door", role=R.DETAIL, avg_blocks=2),
    K.SPIRAL_STAIRCASE: OperationContract(
        required=("block", "base", "height"), block_suffix="stairs", role=R.DETAIL, avg_blocks=20
    ),
    K.BALCONY: OperationContract(required=("block", "base"), avg_blocks=30),
    K.PIXEL_ART: OperationContract(required=("base", "grid"), avg_blocks=100),
    K.THREE_D_LAYERS: OperationContract(required=("base", "layers", "legend"), avg_blocks=1000),

    K.SITE_PREP: OperationContract(role=R.EXCLUDED, op_type=T.SYSTEM, avg_blocks=0),

    K.WE_FILL: OperationContract(
        required=("block", "from", "to"), role=R.FOUNDATION, fallback=K.FILL, op_type=T.WORLDEDIT, avg_blocks=5000
    ),
    K.WE_WALLS: OperationContract(
        required=("block", "from", "to"), role=R.WALL, fallback=K.HOLLOW_BOX, op_type=T.WORLDEDIT, avg_blocks=2000
    ),
    K.WE_PYRAMID: OperationContract(
        required=("block", "height"), required_one_of=(("base", "pos"),),
        role=R.ROOF, fallback=K.ROOF_GABLE, op_type=T.WORLDEDIT, avg_blocks=3000,
    ),
    K.WE_CYLINDER: OperationContract(
        required=("block", "radius", "height"), required_one_of=(("base", "pos"),),
        op_type=T.WORLDEDIT, avg_blocks=4000,
    ),
    K.WE_SPHERE: OperationContract(
        required=("block", "radius"), required_one_of=(("center", "pos", "base"),),
        op_type=T.WORLDEDIT, avg_blocks=3000,
    ),
    K.WE_REPLACE: OperationContract(
        required=("from", "to", "fromBlock", "toBlock"), op_type=T.WORLDEDIT, avg_blocks=2000
    ),
    K.SPHERE: OperationContract(required=("block", "radius"), op_type=T.WORLDEDIT, avg_blocks=1000),
    K.CYLINDER: OperationContract(required=("block", "radius", "height"), op_type=T.WORLDEDIT, avg_blocks=1500),

    K.SMART_WALL: OperationContract(required=("from", "to", "palette"), role=R.WALL, op_type=T.SMART, avg_blocks=200),
    K.SMART_FLOOR: OperationContract(required=("from", "to", "palette"), role=R.FLOOR, op_type=T.SMART, avg_blocks=400),
    K.SMART_ROOF: OperationContract(required=("from", "to", "block"), role=R.ROOF, op_type=T.SMART, avg_blocks=500),
}

# Fill-family operations: a from == to box is degenerate for these.
VOLUME_OPS = frozenset({K.FILL, K.WE_FILL, K.HOLLOW_BOX, K.WE_WALLS, K.SMART_WALL, K.SMART_FLOOR})

CSD_PHASES: dict[OperationKind, CSDPhase] = {
    **{op: CSDPhase.CORE for op in (
        K.WE_FILL, K.WE_WALLS, K.WE_CYLINDER, K.WE_SPHERE, K.WE_PYRAMID, K.BOX, K.WALL, K.FILL, K.HOLLOW_BOX,
    )},
    **{op: CSDPhase.STRUCTURE for op in (
        K.THREE_D_LAYERS, K.ROOF_GABLE, K.ROOF_HIP, K.ROOF_FLAT, K.SMART_ROOF, K.OUTLINE, K.SMART_WALL,
        K.SMART_FLOOR, K.WE_REPLACE,
    )},
    **{op: CSDPhase.DETAIL for op in (
        K.SET, K.LINE, K.SLAB, K.STAIRS, K.DOOR, K.WINDOW_STRIP, K.FENCE_CONNECT, K.BALCONY,
        K.SPIRAL_STAIRCASE, K.PIXEL_ART,
    )},
    **{op: CSDPhase.EXCLUDED for op in (K.MOVE, K.CURSOR_RESET, K.SITE_PREP)},
}


def _coerce(op: Union[OperationKind, str, None]) -> Optional[OperationKind]:
    if isinstance(op, OperationKind):
        return op
    try:
        return OperationKind(op)
    except ValueError:
        return None


def lookup(op: Union[OperationKind, str, None]) -> Optional[OperationContract]:
    """Return the contract for an operation, or None for names outside the registry."""
    kind = _coerce(op)
    if kind is None:
        return None
    return OPERATION_REGISTRY[kind]


def is_known_operation(op: Union[OperationKind, str, None]) -> bool:
    return _coerce(op) is not None


def is_world_edit(op: Union[OperationKind, str, None]) -> bool:
    contract = lookup(op)
    return contract is not None and contract.op_type == OperationType.WORLDEDIT


def fallback_for(op: Union[OperationKind, str, None]) -> Optional[OperationKind]:
    """Legacy vanilla operation to use when a world-edit call cannot run."""
    contract = lookup(op)
    return contract.fallback if contract else None


def role_of(op: Union[OperationKind, str, None]) -> StructuralRole:
    contract = lookup(op)
    return contract.role if contract else StructuralRole.OTHER


def ops_with_role(role: StructuralRole) -> list[OperationKind]:
    return [kind for kind, contract in OPERATION_REGISTRY.items() if contract.role == role]


def ops_of_type(op_type: OperationType) -> list[OperationKind]:
    return [kind for kind, contract in OPERATION_REGISTRY.items() if contract.op_type == op_type]


def csd_phase(op: Union[OperationKind, str, None], block: Optional[str] = None) -> CSDPhase:
    """Classify an operation into its CSD phase.

    Movement and system ops are EXCLUDED whatever their block. Otherwise
    carving with air counts as DETAIL, and ops without a phase as STRUCTURE.
    """
    kind = _coerce(op)
    phase = CSD_PHASES.get(kind) if kind is not None else None
    if phase == CSDPhase.EXCLUDED:
        return phase
    if block == "air":
        return CSDPhase.DETAIL
    return phase or CSDPhase.STRUCTURE
