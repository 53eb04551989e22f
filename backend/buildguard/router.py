"""Prompt router: deterministic keyword classification of a build request.

Maps free text to an execution kind, build type, validation profile, build
passes and style. Rules are tried in order; the first substring hit wins.
Fast, no LLM calls, never raises.
"""

from typing import Optional

import structlog

from buildguard.models.analysis import BlueprintKind, BuildPass, RouteDecision

logger = structlog.get_logger()

# Order matters: treehouse before tree, and "modern house" hits the house rule first.
ROUTING_RULES: list[dict] = [
    {
        "patterns": ["pixel art", "pixelart", "pixel_art", "mosaic", "map art", "map_art", "2d art", "2d_art", "flat art"],
        "kind": BlueprintKind.VOXEL_SPARSE,
        "build_type": "pixel_art",
        "profile": "pixel_art",
        "passes": [BuildPass.SHELL],
    },
    {
        "patterns": ["statue", "sculpture", "figure", "character model", "3d figure", "3d model", "bust", "monument"],
        "kind": BlueprintKind.VOXEL_SPARSE,
        "build_type": "statue",
        "profile": "statue",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": ["treehouse", "tree house", "tree_house"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "treehouse",
        "profile": "treehouse",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": ["tree", "oak tree", "birch tree", "spruce tree", "jungle tree", "plant", "bush", "shrub"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "tree",
        "profile": "tree",
        "passes": [BuildPass.SHELL],
    },
    {
        "patterns": ["house", "home", "mansion", "cottage", "cabin", "villa", "bungalow", "apartment", "dwelling"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "house",
        "profile": "house",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": ["modern home", "modern house", "modern building", "contemporary", "minimalist house"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "house",
        "profile": "house",
        "style": "modern",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL, BuildPass.INTERIOR],
    },
    {
        "patterns": ["castle", "fortress", "fort", "citadel", "stronghold", "keep", "palace", "chateau"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "castle",
        "profile": "castle",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": ["tower", "watchtower", "bell tower", "clock tower", "lighthouse", "spire", "minaret"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "infrastructure",
        "profile": "infrastructure",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": ["bridge", "overpass", "viaduct", "aqueduct", "walkway"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "infrastructure",
        "profile": "infrastructure",
        "passes": [BuildPass.SHELL],
    },
    {
        "patterns": [
            "eiffel", "big ben", "statue of liberty", "colosseum", "pyramid", "sphinx",
            "landmark", "replica", "famous", "iconic", "recreation",
        ],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "landmark",
        "profile": "landmark",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
    {
        "patterns": [
            "terrain", "landscape", "mountain", "hill", "valley", "cliff", "canyon",
            "river", "lake", "island", "volcano", "cave",
        ],
        "kind": BlueprintKind.VOXEL_SPARSE,
        "build_type": "terrain",
        "profile": "terrain",
        "passes": [BuildPass.SHELL, BuildPass.LANDSCAPE],
    },
    {
        "patterns": ["wall", "fence", "barrier", "perimeter", "boundary"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "infrastructure",
        "profile": "infrastructure",
        "passes": [BuildPass.SHELL],
    },
    {
        "patterns": ["ship", "boat", "yacht", "galleon", "submarine", "aircraft", "plane", "car", "train"],
        "kind": BlueprintKind.OPS_SCRIPT,
        "build_type": "infrastructure",
        "profile": "infrastructure",
        "passes": [BuildPass.SHELL, BuildPass.DETAIL],
    },
]

PASS_INDICATORS: dict[BuildPass, list[str]] = {
    BuildPass.INTERIOR: ["interior", "furnished", "inside", "rooms", "bedroom", "kitchen", "bathroom", "living room"],
    BuildPass.DETAIL: ["detailed", "decorated", "ornate", "fancy", "elaborate", "intricate"],
    BuildPass.LANDSCAPE: ["garden", "landscaping", "yard", "courtyard", "surrounding", "path", "flowers"],
}

STYLE_KEYWORDS: dict[str, list[str]] = {
    "medieval": ["medieval", "castle", "fortress", "knight", "kingdom", "old", "ancient"],
    "modern": ["modern", "contemporary", "minimalist", "sleek", "glass", "steel"],
    "gothic": ["gothic", "dark", "spooky", "haunted", "cathedral"],
    "rustic": ["rustic", "farmhouse", "country", "barn", "wooden", "log"],
    "oriental": ["oriental", "asian", "japanese", "chinese", "pagoda", "temple"],
    "fantasy": ["fantasy", "magical", "enchanted", "wizard", "fairy", "elven"],
    "industrial": ["industrial", "factory", "warehouse", "steampunk", "mechanical"],
    "organic": ["organic", "natural", "tree", "living", "grown"],
}

VOXEL_BUILD_TYPES = frozenset({"pixel_art", "statue", "terrain"})
ORGANIC_BUILD_TYPES = frozenset({"tree", "terrain", "organic"})

# Unmatched requests get the strictest structural profile.
DEFAULT_PROFILE = "house"


def route_prompt(prompt: Optional[str]) -> RouteDecision:
    """Classify a build request.

    Args:
        prompt: The user's free-text request

    Returns:
        RouteDecision; confidence is "high" for a rule match and "none" otherwise
    """
    if not prompt or not isinstance(prompt, str) or not prompt.strip():
        return default_route()

    normalized = prompt.lower().strip()

    matched_rule, matched_pattern = None, None
    for rule in ROUTING_RULES:
        matched_pattern = next((p for p in rule["patterns"] if p in normalized), None)
        if matched_pattern:
            matched_rule = rule
            break

    if matched_rule is None:
        decision = default_route(passes=_infer_passes(normalized, [BuildPass.SHELL]), style=_infer_style(normalized))
        logger.debug("route_default", prompt_length=len(normalized))
        return decision

    decision = RouteDecision(
        kind=matched_rule["kind"],
        build_type=matched_rule["build_type"],
        profile_id=matched_rule["profile"],
        passes=_infer_passes(normalized, matched_rule["passes"]),
        style=_infer_style(normalized, matched_rule.get("style", "default")),
        matched_pattern=matched_pattern,
        confidence="high",
    )
    logger.debug("route_matched", build_type=decision.build_type, pattern=matched_pattern)
    return decision


def default_route(passes: Optional[list[BuildPass]] = None, style: str = "default") -> RouteDecision:
    return RouteDecision(
        kind=BlueprintKind.OPS_SCRIPT,
        build_type="generic",
        profile_id=DEFAULT_PROFILE,
        passes=passes or [BuildPass.SHELL],
        style=style,
        matched_pattern=None,
        confidence="none",
    )


def _infer_passes(prompt: str, defaults: list[BuildPass]) -> list[BuildPass]:
    passes = list(defaults)
    for build_pass, keywords in PASS_INDICATORS.items():
        if build_pass not in passes and any(kw in prompt for kw in keywords):
            passes.append(build_pass)
    return passes


def _infer_style(prompt: str, default: str = "default") -> str:
    for style, keywords in STYLE_KEYWORDS.items():
        if any(kw in prompt for kw in keywords):
            return style
    return default


def should_use_voxel_sparse(build_type: Optional[str]) -> bool:
    return build_type in VOXEL_BUILD_TYPES


def is_organic_build_type(build_type: Optional[str]) -> bool:
    return build_type in ORGANIC_BUILD_TYPES


def available_build_types() -> list[str]:
    types = []
    for rule in ROUTING_RULES:
        if rule["build_type"] not in types:
            types.append(rule["build_type"])
    types.append("generic")
    return types
