"""Blueprint validators: deterministic checks over a parsed build plan.

Usage:
    from buildguard.validators import BlueprintValidator

    engine = BlueprintValidator(limits=settings.safety_limits())
    result = await engine.validate(raw_blueprint, analysis)
    if not result.valid:
        # Hand result.errors to the repair engine
"""

from buildguard.validators.base import BaseValidator
from buildguard.validators.engine import BlueprintValidator
from buildguard.validators.normalizer import BlueprintNormalizer
from buildguard.validators.profile_validator import ProfileValidator, validate_with_profile
from buildguard.validators.profiles import VALIDATION_PROFILES, detect_build_type, get_validation_profile
from buildguard.validators.spatial_validator import SpatialValidator, format_connectivity_issues_for_repair

__all__ = [
    "BaseValidator",
    "BlueprintValidator",
    "BlueprintNormalizer",
    "ProfileValidator",
    "validate_with_profile",
    "VALIDATION_PROFILES",
    "detect_build_type",
    "get_validation_profile",
    "SpatialValidator",
    "format_connectivity_issues_for_repair",
]
