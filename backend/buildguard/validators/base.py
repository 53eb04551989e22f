"""Base validator: abstract class implementing the Strategy Pattern.

Each validator is a standalone, independently testable unit.
New validators are added without modifying the engine.
"""

from abc import ABC, abstractmethod
from typing import Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Step, Vec3
from buildguard.models.issues import IssueCode, Severity, ValidationIssue


class BaseValidator(ABC):
    """Abstract base for all blueprint validators.

    Contract:
        - validate() is deterministic: same input, same output, same order
        - validate() returns a list of ValidationIssue (empty = no issues)
        - validate() never mutates the blueprint and never raises for bad shapes
        - No LLM calls, no network calls, no randomness
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for logging."""
        ...

    @abstractmethod
    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        """Run validation checks against the blueprint.

        Args:
            blueprint: Parsed, normalised blueprint
            analysis: What the request asked for (build type, features, dimensions)

        Returns:
            List of ValidationIssue findings (empty if no issues)
        """
        ...

    # ── Helper Methods ──

    def _issue(
        self,
        code: IssueCode,
        severity: Severity,
        message: str,
        step: Optional[int] = None,
        field: Optional[str] = None,
        position: Optional[Vec3] = None,
        suggestion: Optional[str] = None,
        **details,
    ) -> ValidationIssue:
        """Convenience method to create a ValidationIssue."""
        return ValidationIssue(
            code=code,
            severity=severity,
            message=message,
            step=step,
            field=field,
            position=position,
            suggestion=suggestion,
            details=details,
        )

    @staticmethod
    def _build_type(blueprint: Blueprint, analysis: Optional[BuildAnalysis]) -> str:
        """Build type from the request, then the blueprint, then 'generic'."""
        if analysis and analysis.build_type:
            return analysis.build_type
        return blueprint.build_type or "generic"

    @staticmethod
    def _step_label(index: int, step: Step) -> str:
        return f"Step {index + 1} ({step.op.value})"

    @staticmethod
    def _contains_any(text: Optional[str], keywords) -> bool:
        """Check if text contains any of the keywords (case-insensitive)."""
        if not text:
            return False
        text_lower = text.lower()
        return any(kw.lower() in text_lower for kw in keywords)

    @staticmethod
    def _resolved_blocks(blueprint: Blueprint) -> list[str]:
        """Resolved block name of every step that has one, lowercased."""
        return [
            blueprint.resolve_block(s.block).lower()
            for s in blueprint.steps
            if s.block
        ]
