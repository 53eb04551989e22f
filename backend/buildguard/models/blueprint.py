"""Blueprint models: the typed form of a generated build plan.

Raw generator output is parsed into these at the boundary. Steps are frozen;
normalisation and repair build new Blueprint values instead of editing steps.
"""

from typing import Any, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from buildguard.operations import OperationKind, lookup

# Wire names of the point-like coordinate parameters.
COORD_KEYS = ("from", "to", "pos", "base", "center")

_FIELD_NAMES = {
    "from": "from_",
    "peakHeight": "peak_height",
    "fromBlock": "from_block",
    "toBlock": "to_block",
}


class Vec3(BaseModel):
    """Integer grid coordinate."""

    x: int
    y: int
    z: int

    model_config = ConfigDict(frozen=True)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.x, self.y, self.z)


class Box(NamedTuple):
    """Inclusive axis-aligned bounding box."""

    min_x: int
    min_y: int
    min_z: int
    max_x: int
    max_y: int
    max_z: int

    @classmethod
    def from_points(cls, a: Vec3, b: Vec3) -> "Box":
        return cls(
            min(a.x, b.x), min(a.y, b.y), min(a.z, b.z),
            max(a.x, b.x), max(a.y, b.y), max(a.z, b.z),
        )

    @classmethod
    def point(cls, p: Vec3) -> "Box":
        return cls(p.x, p.y, p.z, p.x, p.y, p.z)

    @property
    def volume(self) -> int:
        return (
            (self.max_x - self.min_x + 1)
            * (self.max_y - self.min_y + 1)
            * (self.max_z - self.min_z + 1)
        )

    def union(self, other: "Box") -> "Box":
        return Box(
            min(self.min_x, other.min_x), min(self.min_y, other.min_y), min(self.min_z, other.min_z),
            max(self.max_x, other.max_x), max(self.max_y, other.max_y), max(self.max_z, other.max_z),
        )


class Size(BaseModel):
    """Declared build footprint."""

    width: int
    height: int
    depth: int

    @property
    def volume(self) -> int:
        return self.width * self.height * self.depth


class Step(BaseModel):
    """One operation of a blueprint.

    Known parameters are typed; operation-specific extras (grid, layers, legend,
    palette for smart ops...) are kept as-is in model_extra.
    """

    op: OperationKind
    block: Optional[str] = None
    from_: Optional[Vec3] = Field(default=None, alias="from")
    to: Optional[Vec3] = None
    pos: Optional[Vec3] = None
    base: Optional[Vec3] = None
    center: Optional[Vec3] = None
    offset: Optional[Vec3] = None
    size: Optional[dict[str, int]] = None
    radius: Optional[int] = None
    height: Optional[int] = None
    width: Optional[int] = None
    depth: Optional[int] = None
    peak_height: Optional[int] = Field(default=None, alias="peakHeight")
    hollow: Optional[bool] = None
    from_block: Optional[str] = Field(default=None, alias="fromBlock")
    to_block: Optional[str] = Field(default=None, alias="toBlock")
    tags: list[str] = Field(default_factory=list)
    fallback: Optional["Step"] = None

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    def param(self, name: str) -> Any:
        """Read a parameter by its wire name."""
        attr = _FIELD_NAMES.get(name, name)
        if attr in type(self).model_fields:
            return getattr(self, attr)
        return (self.model_extra or {}).get(name)

    def has_param(self, name: str) -> bool:
        return self.param(name) is not None

    def coordinates(self) -> dict[str, Vec3]:
        """All point parameters that are set, keyed by wire name."""
        coords = {}
        for key in COORD_KEYS:
            value = self.param(key)
            if value is not None:
                coords[key] = value
        return coords

    def extent(self) -> Optional[tuple[int, int, int]]:
        """Size parameter as (x, y, z), accepting either axis or dimension naming."""
        if not self.size:
            return None
        sx = self.size.get("x", self.size.get("width"))
        sy = self.size.get("y", self.size.get("height"))
        sz = self.size.get("z", self.size.get("depth"))
        if sx is None or sy is None or sz is None:
            return None
        return (sx, sy, sz)

    def bounds(self) -> Optional[Box]:
        """Bounding box of the blocks this step touches, or None if it has no position."""
        if self.from_ is not None and self.to is not None:
            return Box.from_points(self.from_, self.to)

        anchor = self.pos or self.base
        extent = self.extent()
        if anchor is not None and extent is not None:
            sx, sy, sz = (max(1, v) for v in extent)
            return Box(anchor.x, anchor.y, anchor.z, anchor.x + sx - 1, anchor.y + sy - 1, anchor.z + sz - 1)

        if self.radius is not None:
            center = self.center or self.base or self.pos
            if center is not None:
                r = max(0, self.radius)
                if self.center is not None or self.height is None:
                    return Box(center.x - r, center.y - r, center.z - r, center.x + r, center.y + r, center.z + r)
                top = center.y + max(1, self.height) - 1
                return Box(center.x - r, center.y, center.z - r, center.x + r, top, center.z + r)

        if self.op == OperationKind.WE_PYRAMID and anchor is not None and self.height:
            half = self.height - 1
            return Box(
                anchor.x - half, anchor.y, anchor.z - half,
                anchor.x + half, anchor.y + self.height - 1, anchor.z + half,
            )

        if anchor is not None:
            return Box.point(anchor)
        if self.center is not None:
            return Box.point(self.center)
        return None

    @property
    def contract(self):
        return lookup(self.op)


class Blueprint(BaseModel):
    """A complete build plan: footprint, palette and ordered steps."""

    size: Size
    palette: Union[dict[str, str], list[str]] = Field(default_factory=dict)
    steps: list[Step] = Field(default_factory=list)
    build_type: Optional[str] = Field(default=None, alias="buildType")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def palette_blocks(self) -> list[str]:
        if isinstance(self.palette, dict):
            return list(self.palette.values())
        return list(self.palette)

    def resolve_block(self, block: Optional[str]) -> Optional[str]:
        """Resolve a $token against a mapping palette; other names pass through."""
        if block and block.startswith("$") and isinstance(self.palette, dict):
            return self.palette.get(block[1:], block)
        return block

    def used_blocks(self) -> list[str]:
        blocks = []
        for step in self.steps:
            resolved = self.resolve_block(step.block)
            if resolved and resolved not in blocks:
                blocks.append(resolved)
        return blocks

    def content_bounds(self) -> Optional[Box]:
        box = None
        for step in self.steps:
            b = step.bounds()
            if b is None:
                continue
            box = b if box is None else box.union(b)
        return box

    def to_payload(self) -> dict:
        """Serialise back to the wire shape the generator and builder use."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude_defaults=False)
