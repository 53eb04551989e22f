"""Model-backed collaborators for the repair loop."""

from buildguard.agents.base import BaseAgent
from buildguard.agents.repairer import BlueprintRepairer, RepairAgent

__all__ = ["BaseAgent", "BlueprintRepairer", "RepairAgent"]
