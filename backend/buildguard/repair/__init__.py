"""Repair loop for blueprints that failed validation."""

from buildguard.repair.engine import RepairEngine, needs_repair
from buildguard.repair.fallbacks import kind_switch, scale_reduction, simplify_passes

__all__ = ["RepairEngine", "needs_repair", "kind_switch", "scale_reduction", "simplify_passes"]
