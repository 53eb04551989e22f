"""Validation profiles: build-type-aware structural requirements and ceilings.

Not every build needs a roof, walls and a door. A profile says which of those
a build type requires, which characteristics it tolerates, how strongly its
quality misses count, and the absolute size it may reach.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.operations import OperationKind


class ValidationProfile(BaseModel):
    id: str
    name: str
    description: str = ""

    # Structural requirements
    require_roof: bool = False
    require_walls: bool = False
    require_door: bool = False
    require_foundation: bool = False

    # Allowed characteristics
    allow_flat: bool = False
    allow_floating: bool = False
    allow_elevated: bool = False
    allow_organic: bool = False
    allow_irregular: bool = False
    allow_extreme_scale: bool = False

    # Safety ceilings, always enforced
    max_height: int = 64
    max_width: int = 64
    max_depth: int = 64

    quality_checks: list[str] = Field(default_factory=list)
    quality_weight: float = Field(default=1.0, description="Lower is more lenient")

    model_config = {"frozen": True}


VALIDATION_PROFILES: dict[str, ValidationProfile] = {
    "pixel_art": ValidationProfile(
        id="pixel_art", name="Pixel Art", description="2D or thin 3D pixel art builds",
        allow_flat=True, allow_floating=True, allow_irregular=True,
        max_height=256, max_width=256, max_depth=16,
        quality_checks=["bounded", "planar_thin", "palette_diversity"], quality_weight=0.5,
    ),
    "statue": ValidationProfile(
        id="statue", name="Statue / Sculpture", description="3D figures, characters, and sculptures",
        require_foundation=True, allow_organic=True, allow_irregular=True,
        max_height=128, max_width=64, max_depth=64,
        quality_checks=["bounded", "has_base", "structural_integrity", "volume_density"], quality_weight=0.6,
    ),
    "tree": ValidationProfile(
        id="tree", name="Tree / Plant", description="Natural organic structures",
        allow_organic=True, allow_irregular=True,
        max_height=64, max_width=32, max_depth=32,
        quality_checks=["has_trunk", "has_canopy", "organic_shape"], quality_weight=0.5,
    ),
    "treehouse": ValidationProfile(
        id="treehouse", name="Treehouse", description="Elevated structures built around/on trees",
        require_roof=True, require_walls=True, require_door=True,
        allow_elevated=True, allow_organic=True,
        max_height=64, max_width=32, max_depth=32,
        quality_checks=["has_trunk", "enclosed_shell", "has_access", "has_platform"], quality_weight=0.7,
    ),
    "house": ValidationProfile(
        id="house", name="House / Building", description="Standard residential or commercial structures",
        require_roof=True, require_walls=True, require_door=True, require_foundation=True,
        max_height=64, max_width=64, max_depth=64,
        quality_checks=["enclosed_shell", "roof_coverage", "door_accessible", "foundation_solid"],
        quality_weight=1.0,
    ),
    "castle": ValidationProfile(
        id="castle", name="Castle / Fortress", description="Large fortified structures with towers and walls",
        require_roof=True, require_walls=True, require_door=True, require_foundation=True,
        allow_extreme_scale=True,
        max_height=128, max_width=256, max_depth=256,
        quality_checks=["enclosed_shell", "structural_integrity", "has_towers", "has_entrance"],
        quality_weight=0.9,
    ),
    "landmark": ValidationProfile(
        id="landmark", name="Landmark / Monument", description="Famous structures, replicas, monuments",
        require_foundation=True, allow_irregular=True, allow_extreme_scale=True,
        max_height=256, max_width=256, max_depth=256,
        quality_checks=["bounded", "structural_integrity", "has_base"], quality_weight=0.7,
    ),
    "infrastructure": ValidationProfile(
        id="infrastructure", name="Infrastructure", description="Bridges, towers, roads, utilities",
        require_foundation=True, allow_extreme_scale=True,
        max_height=256, max_width=512, max_depth=512,
        quality_checks=["bounded", "connected", "structural_integrity"], quality_weight=0.6,
    ),
    "terrain": ValidationProfile(
        id="terrain", name="Terrain / Landscape", description="Natural terrain features, landscaping",
        allow_flat=True, allow_organic=True, allow_irregular=True, allow_extreme_scale=True,
        max_height=128, max_width=512, max_depth=512,
        quality_checks=["bounded", "smooth_transitions", "natural_variation"], quality_weight=0.4,
    ),
    "generic": ValidationProfile(
        id="generic", name="Generic Build", description="Default fallback profile",
        require_roof=True, require_walls=True, require_door=True, require_foundation=True,
        max_height=64, max_width=64, max_depth=64,
        quality_checks=["bounded", "enclosed_shell"], quality_weight=1.0,
    ),
}

# Build type spellings -> profile id
BUILD_TYPE_TO_PROFILE: dict[str, str] = {
    # Pixel art
    "pixel_art": "pixel_art", "pixelart": "pixel_art", "mosaic": "pixel_art",
    "map_art": "pixel_art", "2d_art": "pixel_art",
    # Statue
    "statue": "statue", "sculpture": "statue", "figure": "statue",
    "character": "statue", "3d_model": "statue",
    # Tree
    "tree": "tree", "plant": "tree", "organic": "tree", "nature": "tree",
    # Treehouse
    "treehouse": "treehouse", "tree_house": "treehouse",
    # House
    "house": "house", "home": "house", "cabin": "house", "cottage": "house",
    "mansion": "house", "building": "house", "modern_home": "house", "residential": "house",
    # Castle
    "castle": "castle", "fortress": "castle", "fort": "castle", "palace": "castle", "keep": "castle",
    # Landmark
    "landmark": "landmark", "monument": "landmark", "replica": "landmark", "famous": "landmark",
    "eiffel": "landmark", "eiffel_tower": "landmark", "statue_of_liberty": "landmark",
    "colosseum": "landmark", "big_ben": "landmark", "pyramids": "landmark", "pyramid": "landmark",
    "sphinx": "landmark", "taj_mahal": "landmark", "leaning_tower": "landmark",
    # Infrastructure
    "infrastructure": "infrastructure", "tower": "infrastructure", "bridge": "infrastructure",
    "road": "infrastructure", "wall": "infrastructure", "fence": "infrastructure", "gate": "infrastructure",
    # Terrain
    "terrain": "terrain", "landscape": "terrain", "mountain": "terrain", "hill": "terrain",
    "valley": "terrain", "river": "terrain",
}

_SEPARATORS = re.compile(r"[_\s]+")


def get_validation_profile(build_type: Optional[str]) -> ValidationProfile:
    """Resolve a build type to its profile: direct id, alias, partial match, then generic."""
    if not build_type:
        return VALIDATION_PROFILES["generic"]

    normalized = _SEPARATORS.sub("_", build_type.lower().strip())

    if normalized in VALIDATION_PROFILES:
        return VALIDATION_PROFILES[normalized]

    if normalized in BUILD_TYPE_TO_PROFILE:
        return VALIDATION_PROFILES[BUILD_TYPE_TO_PROFILE[normalized]]

    for key, profile_id in BUILD_TYPE_TO_PROFILE.items():
        if key in normalized or normalized in key:
            return VALIDATION_PROFILES[profile_id]

    return VALIDATION_PROFILES["generic"]


def detect_build_type(blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> str:
    """Request build type, then the blueprint's own, then a guess from its operations."""
    if analysis and analysis.build_type:
        return analysis.build_type
    if blueprint.build_type:
        return blueprint.build_type

    ops = {step.op for step in blueprint.steps}
    if OperationKind.PIXEL_ART in ops or OperationKind.THREE_D_LAYERS in ops:
        return "pixel_art"

    names = " ".join(op.value for op in ops)
    if "roof" in names and "wall" in names and "door" in names:
        return "house"
    return "generic"
