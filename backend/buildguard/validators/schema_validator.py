"""Schema Validator: required fields, boundary parsing and structural invariants.

check_required_fields() and parse_blueprint() work on the raw dict at the
system boundary. SchemaValidator then checks hand-written invariants on the
typed Blueprint (positive size, palette entries, fallback shape).
"""

import json
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.issues import IssueCode, Severity, ValidationIssue
from buildguard.validators.base import BaseValidator

SIZE_KEYS = ("width", "height", "depth")


def _error(code: IssueCode, message: str, field: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(code=code, severity=Severity.ERROR, message=message, field=field)


def check_required_fields(raw: dict) -> list[ValidationIssue]:
    """Fail-fast presence checks: palette, size and steps must exist and be non-empty."""
    errors = []

    if not isinstance(raw, dict):
        return [_error(IssueCode.SCHEMA_INVALID_TYPE, "Blueprint must be a JSON object")]

    palette = raw.get("palette")
    if not palette or not isinstance(palette, (list, dict)):
        errors.append(_error(
            IssueCode.SCHEMA_MISSING_FIELD,
            "Missing required field: palette (must be non-empty list or object)",
            field="palette",
        ))

    size = raw.get("size")
    if not isinstance(size, dict):
        errors.append(_error(IssueCode.SCHEMA_MISSING_FIELD, "Missing required field: size", field="size"))
    else:
        for key in SIZE_KEYS:
            value = size.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(_error(
                    IssueCode.SCHEMA_INVALID_VALUE,
                    f"Invalid size.{key}: must be a positive number",
                    field=f"size.{key}",
                ))

    steps = raw.get("steps")
    if not isinstance(steps, list) or not steps:
        errors.append(_error(
            IssueCode.SCHEMA_EMPTY_STEPS,
            "Missing required field: steps (must be non-empty array)",
            field="steps",
        ))

    return errors


def parse_blueprint(raw: Union[dict, str]) -> tuple[Optional[Blueprint], list[ValidationIssue]]:
    """Parse raw generator output into a Blueprint.

    Returns (blueprint, []) on success, (None, issues) otherwise. Unknown
    operations and mistyped coordinates surface here as schema issues.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            return None, [_error(IssueCode.SCHEMA_INVALID_TYPE, f"Cannot parse blueprint JSON: {str(e)}")]

    try:
        return Blueprint.model_validate(raw), []
    except PydanticValidationError as e:
        issues = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err["loc"])
            step = err["loc"][1] if len(err["loc"]) > 1 and err["loc"][0] == "steps" else None
            if step is not None and len(err["loc"]) > 2 and err["loc"][2] == "op":
                code = IssueCode.PARAM_UNKNOWN_OPERATION
                message = f"Step {step + 1}: Unknown operation '{err.get('input')}'"
            else:
                code = IssueCode.SCHEMA_INVALID_TYPE
                message = f"Schema: {loc or '<root>'}: {err['msg']}"
            issues.append(ValidationIssue(
                code=code,
                severity=Severity.ERROR,
                message=message,
                step=step if isinstance(step, int) else None,
                field=loc,
            ))
        return None, issues


class SchemaValidator(BaseValidator):
    """Structural invariants the typed model alone does not express.

    Size maxima and palette cardinality belong to LimitsValidator, which decides
    between hard errors (height) and advisory warnings (width, depth, palette).
    """

    @property
    def name(self) -> str:
        return "SchemaValidator"

    def validate(self, blueprint: Blueprint, analysis: Optional[BuildAnalysis] = None) -> list[ValidationIssue]:
        issues = []

        # 1. Size must be positive
        for key in SIZE_KEYS:
            value = getattr(blueprint.size, key)
            if value <= 0:
                issues.append(self._issue(
                    IssueCode.SCHEMA_INVALID_VALUE, Severity.ERROR,
                    f"Schema: size.{key} must be positive (got {value})",
                    field=f"size.{key}",
                ))

        # 2. Palette must be non-empty and hold block names
        blocks = blueprint.palette_blocks()
        if not blocks:
            issues.append(self._issue(
                IssueCode.SCHEMA_MISSING_FIELD, Severity.ERROR, "Schema: palette is empty", field="palette",
            ))
        for i, block in enumerate(blocks):
            if not block.strip():
                issues.append(self._issue(
                    IssueCode.SCHEMA_INVALID_VALUE, Severity.ERROR,
                    f"Schema: palette entry {i} is not a block name", field="palette",
                ))
        if isinstance(blueprint.palette, list) and len(set(blocks)) != len(blocks):
            issues.append(self._issue(
                IssueCode.SCHEMA_INVALID_VALUE, Severity.WARNING,
                "Schema: palette contains duplicate entries", field="palette",
            ))

        # 3. Steps
        if not blueprint.steps:
            issues.append(self._issue(
                IssueCode.SCHEMA_EMPTY_STEPS, Severity.ERROR, "Schema: steps array is empty", field="steps",
            ))
        for i, step in enumerate(blueprint.steps):
            if step.fallback is not None and step.fallback.fallback is not None:
                issues.append(self._issue(
                    IssueCode.SCHEMA_INVALID_VALUE, Severity.ERROR,
                    f"Schema: {self._step_label(i, step)} fallback must not have its own fallback",
                    step=i, field="fallback",
                ))
            if step.block is not None and not step.block.strip():
                issues.append(self._issue(
                    IssueCode.SCHEMA_INVALID_VALUE, Severity.ERROR,
                    f"Schema: {self._step_label(i, step)} has an empty block name",
                    step=i, field="block",
                ))

        return issues
