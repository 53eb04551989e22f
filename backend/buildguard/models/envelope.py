"""Blueprint envelope: the versioned container exchanged between pipeline stages.

Fields use snake_case in Python and camelCase on the wire (blueprintVersion,
estimates.blockCount, ...). Envelopes are frozen: repair builds a new one with
model_copy() rather than editing the old one.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from buildguard.models.analysis import BlueprintKind, BuildPass
from buildguard.models.blueprint import Vec3
from buildguard.models.issues import ValidationIssue

ENVELOPE_VERSION = "1.0.0"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class EnvelopeTags(CamelModel):
    build_type: list[str] = Field(min_length=1)
    style: list[str] = Field(default_factory=lambda: ["default"])
    passes: list[BuildPass] = Field(default_factory=lambda: [BuildPass.SHELL])


class BoundsRange(CamelModel):
    min: Vec3
    max: Vec3

    def is_inverted(self) -> bool:
        return self.min.x > self.max.x or self.min.y > self.max.y or self.min.z > self.max.z

    def dimensions(self) -> tuple[int, int, int]:
        return (
            self.max.x - self.min.x + 1,
            self.max.y - self.min.y + 1,
            self.max.z - self.min.z + 1,
        )


class Bounds(CamelModel):
    local: BoundsRange
    world: Optional[BoundsRange] = None


class Estimates(CamelModel):
    block_count: int = Field(ge=0)
    we_command_count: int = Field(default=0, ge=0)
    vanilla_block_count: int = Field(default=0, ge=0)
    estimated_time_ms: int = Field(default=0, ge=0)


class SafetyInfo(CamelModel):
    max_blocks: int = Field(default=10_000, ge=1)
    max_height: int = Field(default=256, ge=1, le=256)
    max_width: Optional[int] = Field(default=None, ge=1)
    max_depth: Optional[int] = Field(default=None, ge=1)
    allow_protected_regions: bool = False
    forbidden_blocks: list[str] = Field(default_factory=list)


class ValidationInfo(CamelModel):
    profile: Optional[str] = None
    quality_score: Optional[float] = Field(default=None, ge=0, le=1)
    quality_grade: Optional[Literal["A", "B", "C", "D", "F"]] = None
    warnings: list[dict] = Field(default_factory=list)
    validated: bool = False
    validated_at: Optional[datetime] = None


class EnvelopeMetadata(CamelModel):
    created_at: datetime = Field(default_factory=datetime.utcnow)
    source: Literal["v1", "v2", "manual"] = "v1"
    prompt: Optional[str] = None
    intent_id: Optional[str] = None
    fallback: Optional[dict] = Field(default=None, description="Set when a deterministic fallback produced this payload")


class Envelope(CamelModel):
    """A blueprint payload plus its classification, bounds, estimates and safety ceilings."""

    blueprint_version: str = Field(default=ENVELOPE_VERSION, pattern=r"^\d+\.\d+\.\d+$")
    envelope_id: Optional[str] = None
    kind: BlueprintKind
    tags: EnvelopeTags
    origin: Vec3 = Field(default_factory=lambda: Vec3(x=0, y=0, z=0))
    coordinate_system: Literal["local", "world"] = "local"
    bounds: Bounds
    estimates: Estimates
    safety: SafetyInfo
    validation: ValidationInfo = Field(default_factory=ValidationInfo)
    payload: dict
    metadata: Optional[EnvelopeMetadata] = None

    @property
    def build_type(self) -> str:
        return self.tags.build_type[0]

    def to_wire(self) -> dict:
        """Exchanged JSON shape (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EnvelopeValidation(BaseModel):
    """Outcome of validate_envelope()."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    envelope: Optional[Envelope] = None
