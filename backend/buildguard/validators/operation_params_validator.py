"""Operation Parameter Validator: checks every step against its registry contract.

For each step (and its optional fallback) reports missing required params,
missing one-of groups and block-suffix mismatches.
"""

from typing import Optional

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint, Step
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.operations import lookup
from buildguard.validators.base import BaseValidator


class OperationParamsValidator(BaseValidator):

    @property
    def name(self) -> str:
        return "OperationParamsValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues = []
        for i, step in enumerate(blueprint.steps):
            issues.extend(self.check_step(step, i, f"Step {i}", blueprint))
            if step.fallback is not None:
                issues.extend(self.check_step(step.fallback, i, f"Step {i} fallback", blueprint))
        return issues

    def check_step(
        self, step: Step, index: int, label: str, blueprint: Optional[Blueprint] = None
    ) -> list[ValidationIssue]:
        contract = lookup(step.op)
        issues = []

        for param in contract.required:
            if not step.has_param(param):
                issues.append(self._issue(
                    IssueCode.PARAM_MISSING_REQUIRED, Severity.ERROR,
                    f"{label}: Missing required param '{param}'",
                    step=index, field=param,
                ))

        for group in contract.required_one_of:
            if not any(step.has_param(param) for param in group):
                issues.append(self._issue(
                    IssueCode.PARAM_MISSING_ONE_OF, Severity.ERROR,
                    f"{label}: Missing one of [{', '.join(group)}]",
                    step=index, field=group[0],
                ))

        block = blueprint.resolve_block(step.block) if blueprint else step.block
        if contract.block_suffix and block and contract.block_suffix not in block:
            issues.append(self._issue(
                IssueCode.PARAM_BLOCK_SUFFIX, Severity.ERROR,
                f"{label}: Block '{block}' must include '{contract.block_suffix}'",
                step=index, field="block",
                suggestion=f"Use a *_{contract.block_suffix} block, e.g. oak_{contract.block_suffix}",
            ))

        return issues
