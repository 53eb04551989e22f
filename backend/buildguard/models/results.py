"""Orchestrator output: the verdict handed back to the build pipeline."""

from typing import Optional

from pydantic import BaseModel, Field

from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import QualityScore, ValidationIssue
from buildguard.models.repair import RepairResult


class WorldEditStats(BaseModel):
    commands: int = 0
    blocks: int = 0


class QualityReport(BaseModel):
    """Combined quality of a blueprint."""

    score: float = Field(description="min(profile weighted score, legacy score)")
    grade: str
    profile: str
    profile_score: QualityScore
    legacy_score: float
    passed: bool


class ValidationResult(BaseModel):
    """Final verdict: {valid, blueprint, errors, quality?, worldedit?}."""

    valid: bool
    blueprint: Optional[Blueprint] = None
    raw_blueprint: Optional[dict] = Field(default=None, description="Set when the input never parsed")
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    quality: Optional[QualityReport] = None
    worldedit: Optional[WorldEditStats] = None
    retries: int = 0
    terminal: bool = Field(default=False, description="True when repair was not attempted by policy")
    repair: Optional[RepairResult] = None
    build_type: Optional[str] = None

    def to_output(self) -> dict:
        """Wire shape of the verdict."""
        out = {
            "valid": self.valid,
            "blueprint": self.blueprint.to_payload() if self.blueprint else self.raw_blueprint,
            "errors": list(self.errors),
        }
        if self.quality is not None:
            out["quality"] = self.quality.model_dump()
        if self.worldedit is not None:
            out["worldedit"] = self.worldedit.model_dump()
        return out
