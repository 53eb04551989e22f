"""CSD Balance Validator: Core / Structure / Detail phase distribution.

A good build lays down core mass, breaks it up with structure, then adds
texture. Too little detail reads as flat; too much core reads as boxy. The
check only ever warns: the warnings steer repair toward adding detail.
Movement and system ops sit outside the percentages.
"""

from typing import Optional

from pydantic import BaseModel, Field

from buildguard.config import ScoringConfig
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import CSDPhase, csd_phase
from buildguard.validators.base import BaseValidator


class CSDBreakdown(BaseModel):
    core: int = 0
    structure: int = 0
    detail: int = 0
    excluded: int = 0

    @property
    def total(self) -> int:
        return self.core + self.structure + self.detail

    def percent(self, count: int) -> float:
        return count / self.total * 100 if self.total else 0.0


class CSDResult(BaseModel):
    breakdown: CSDBreakdown
    warnings: list[ValidationIssue] = Field(default_factory=list)


def classify_phases(blueprint: Blueprint) -> CSDBreakdown:
    counts = CSDBreakdown()
    for step in blueprint.steps:
        phase = csd_phase(step.op, blueprint.resolve_block(step.block))
        if phase == CSDPhase.CORE:
            counts.core += 1
        elif phase == CSDPhase.DETAIL:
            counts.detail += 1
        elif phase == CSDPhase.EXCLUDED:
            counts.excluded += 1
        else:
            counts.structure += 1
    return counts


class CSDBalanceValidator(BaseValidator):

    def __init__(self, scoring: Optional[ScoringConfig] = None):
        self.scoring = scoring or ScoringConfig()

    @property
    def name(self) -> str:
        return "CSDBalanceValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        return self.evaluate(blueprint).warnings

    def evaluate(self, blueprint: Blueprint) -> CSDResult:
        counts = classify_phases(blueprint)
        result = CSDResult(breakdown=counts)
        if counts.total == 0:
            return result

        s = self.scoring
        detail_pct = counts.percent(counts.detail)
        core_pct = counts.percent(counts.core)
        details = {
            "core_percent": round(core_pct, 1),
            "structure_percent": round(counts.percent(counts.structure), 1),
            "detail_percent": round(detail_pct, 1),
        }

        if counts.detail < s.csd_min_detail_count:
            result.warnings.append(self._issue(
                IssueCode.CSD_DETAIL_COUNT, Severity.WARNING,
                f"Detail phase has only {counts.detail} operations (minimum: {s.csd_min_detail_count}). "
                "Build may appear flat or unfinished.",
                **details,
            ))

        if detail_pct < s.csd_min_detail_percent:
            result.warnings.append(self._issue(
                IssueCode.CSD_DETAIL_PERCENT, Severity.WARNING,
                f"Detail phase is {detail_pct:.1f}% of operations (expected: 30-40%). "
                "Consider adding texture, accents, or carving.",
                **details,
            ))

        if core_pct > s.csd_max_core_percent:
            result.warnings.append(self._issue(
                IssueCode.CSD_CORE_HEAVY, Severity.WARNING,
                f"Core phase is {core_pct:.1f}% of operations (expected: 25-35%). "
                "Build may appear boxy or simplistic.",
                **details,
            ))

        return result
