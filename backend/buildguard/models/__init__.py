"""Typed data shared by every stage of the validation pipeline."""

from buildguard.models.analysis import BlueprintKind, BuildAnalysis, BuildPass, RouteDecision
from buildguard.models.blueprint import Blueprint, Box, Size, Step, Vec3
from buildguard.models.envelope import ENVELOPE_VERSION, Envelope, EnvelopeValidation
from buildguard.models.issues import (
    IssueCategory,
    IssueCode,
    QualityScore,
    Severity,
    ValidationIssue,
    ValidationReport,
)
from buildguard.models.repair import RepairAttempt, RepairResult, RepairStrategy
from buildguard.models.results import QualityReport, ValidationResult, WorldEditStats

__all__ = [
    "BlueprintKind",
    "BuildAnalysis",
    "BuildPass",
    "RouteDecision",
    "Blueprint",
    "Box",
    "Size",
    "Step",
    "Vec3",
    "ENVELOPE_VERSION",
    "Envelope",
    "EnvelopeValidation",
    "IssueCategory",
    "IssueCode",
    "QualityScore",
    "Severity",
    "ValidationIssue",
    "ValidationReport",
    "RepairAttempt",
    "RepairResult",
    "RepairStrategy",
    "QualityReport",
    "ValidationResult",
    "WorldEditStats",
]
