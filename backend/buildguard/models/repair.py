"""Repair models: strategies, per-attempt records and the final outcome."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from buildguard.models.envelope import Envelope


class RepairStrategy(str, Enum):
    LLM = "llm"
    SCALE_REDUCTION = "scale_reduction"
    SIMPLIFY_PASSES = "simplify_passes"
    KIND_SWITCH = "kind_switch"


# Deterministic strategies, in the order they are tried.
FALLBACK_ORDER = (
    RepairStrategy.SCALE_REDUCTION,
    RepairStrategy.SIMPLIFY_PASSES,
    RepairStrategy.KIND_SWITCH,
)


class RepairAttempt(BaseModel):
    """One step of the repair state machine."""

    attempt_index: int
    strategy: RepairStrategy
    envelope: Optional[Envelope] = None
    success: bool = False
    errors: list[str] = Field(default_factory=list)
    quality_score: Optional[float] = None

    class Config:
        use_enum_values = True


class RepairResult(BaseModel):
    """Outcome of a repair call."""

    success: bool
    envelope: Envelope
    attempts: list[RepairAttempt] = Field(default_factory=list)
    fallback_used: bool = False
    fallback_strategy: Optional[RepairStrategy] = None
    errors: list[str] = Field(default_factory=list)

    class Config:
        use_enum_values = True

    @property
    def llm_attempts(self) -> int:
        return sum(1 for a in self.attempts if a.strategy == RepairStrategy.LLM)
