"""Request classification models shared by the router, envelope and validators."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from buildguard.models.blueprint import Size


class BlueprintKind(str, Enum):
    """Execution strategy for a blueprint payload."""

    OPS_SCRIPT = "ops_script"
    VOXEL_SPARSE = "voxel_sparse"
    FLOORPLAN_SEMANTIC = "floorplan_semantic"
    ASSET_REFERENCE = "asset_reference"


class BuildPass(str, Enum):
    SHELL = "shell"
    DETAIL = "detail"
    INTERIOR = "interior"
    LANDSCAPE = "landscape"


class RouteDecision(BaseModel):
    """Result of classifying a free-text build request."""

    kind: BlueprintKind = BlueprintKind.OPS_SCRIPT
    build_type: str = "generic"
    profile_id: str = "house"
    passes: list[BuildPass] = Field(default_factory=lambda: [BuildPass.SHELL])
    style: str = "default"
    matched_pattern: Optional[str] = None
    confidence: str = Field(default="none", description="'high' for a rule match, 'none' otherwise")

    class Config:
        use_enum_values = True


class BuildAnalysis(BaseModel):
    """What the request asked for, handed to the validators as context."""

    prompt: str = ""
    build_type: Optional[str] = None
    features: list[str] = Field(default_factory=list)
    dimensions: Optional[Size] = None
    route: Optional[RouteDecision] = None

    @classmethod
    def from_route(cls, prompt: str, route: RouteDecision, **kwargs) -> "BuildAnalysis":
        return cls(prompt=prompt, build_type=route.build_type, route=route, **kwargs)
