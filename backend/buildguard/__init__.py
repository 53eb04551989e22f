"""BuildGuard: validation, geometric-consistency and repair engine for build blueprints.

Usage:
    from buildguard import BlueprintValidator, RepairAgent, RepairEngine, get_settings

    settings = get_settings()
    engine = BlueprintValidator(
        limits=settings.safety_limits(),
        repair_engine=RepairEngine(RepairAgent(settings=settings), settings.repair_config()),
    )
    result = await engine.validate_and_repair(raw_blueprint, analysis)
"""

from buildguard.agents import RepairAgent
from buildguard.config import get_settings
from buildguard.envelope_builder import create_envelope, validate_envelope
from buildguard.repair import RepairEngine, needs_repair
from buildguard.router import route_prompt
from buildguard.validators import BlueprintValidator

__all__ = [
    "BlueprintValidator",
    "RepairAgent",
    "RepairEngine",
    "create_envelope",
    "get_settings",
    "needs_repair",
    "route_prompt",
    "validate_envelope",
]
