"""Placeholder Validator: no $token block reference may survive normalisation."""

from typing import Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Step
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator
from buildguard.validators.normalizer import is_placeholder, resolve_placeholder


class PlaceholderValidator(BaseValidator):

    @property
    def name(self) -> str:
        return "PlaceholderValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues = []
        for i, step in enumerate(blueprint.steps):
            issues.extend(self._check(blueprint, step, i, f"Step {i}"))
            if step.fallback is not None:
                issues.extend(self._check(blueprint, step.fallback, i, f"Step {i} fallback"))
        return issues

    def _check(self, blueprint: Blueprint, step: Step, index: int, label: str) -> list[ValidationIssue]:
        issues = []
        for field in ("block", "fromBlock", "toBlock"):
            value = step.param(field)
            if is_placeholder(value) and resolve_placeholder(value, blueprint.palette) is None:
                issues.append(self._issue(
                    IssueCode.PLACEHOLDER_UNRESOLVED, Severity.ERROR,
                    f"{label}: Unresolved placeholder '{value}' not in palette",
                    step=index, field=field,
                ))
        return issues
