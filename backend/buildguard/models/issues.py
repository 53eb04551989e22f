"""Validation models: issue codes, severities, categories, scores and reports.

All validation is deterministic: same blueprint in, same issues out, in the
same order. Issues are data; validators never raise for a malformed blueprint.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from buildguard.models.blueprint import Vec3


class Severity(str, Enum):
    """Validation finding severity levels."""

    ERROR = "error"      # Blocks acceptance
    WARNING = "warning"  # Advisory, fed into repair prompts
    INFO = "info"        # Informational only


class IssueCategory(str, Enum):
    """Error taxonomy used for routing issues to repair or terminal failure."""

    SCHEMA = "schema"
    PARAMETER = "parameter"
    PLACEHOLDER = "placeholder"
    GEOMETRY = "geometry"
    CONNECTIVITY = "connectivity"
    LIMIT = "limit"
    QUALITY = "quality"


class IssueCode(str, Enum):
    """Deterministic codes for every validation rule.

    Naming convention: CATEGORY_SPECIFIC_ISSUE
    """

    # Schema
    SCHEMA_MISSING_FIELD = "SCHEMA_MISSING_FIELD"
    SCHEMA_INVALID_TYPE = "SCHEMA_INVALID_TYPE"
    SCHEMA_INVALID_VALUE = "SCHEMA_INVALID_VALUE"
    SCHEMA_EMPTY_STEPS = "SCHEMA_EMPTY_STEPS"
    SCHEMA_ENVELOPE = "SCHEMA_ENVELOPE"
    SCHEMA_PAYLOAD_MISMATCH = "SCHEMA_PAYLOAD_MISMATCH"
    SCHEMA_INVALID_BOUNDS = "SCHEMA_INVALID_BOUNDS"
    VALIDATOR_CRASHED = "VALIDATOR_CRASHED"

    # Parameters
    PARAM_MISSING_REQUIRED = "PARAM_MISSING_REQUIRED"
    PARAM_MISSING_ONE_OF = "PARAM_MISSING_ONE_OF"
    PARAM_BLOCK_SUFFIX = "PARAM_BLOCK_SUFFIX"
    PARAM_UNKNOWN_OPERATION = "PARAM_UNKNOWN_OPERATION"
    PARAM_INVALID_BLOCK = "PARAM_INVALID_BLOCK"

    # Placeholders
    PLACEHOLDER_UNRESOLVED = "PLACEHOLDER_UNRESOLVED"

    # Geometry
    GEOM_ROOF_BELOW_WALLS = "GEOM_ROOF_BELOW_WALLS"
    GEOM_WALLS_BELOW_FLOOR = "GEOM_WALLS_BELOW_FLOOR"
    GEOM_ZERO_VOLUME = "GEOM_ZERO_VOLUME"
    GEOM_EXCEEDS_SIZE = "GEOM_EXCEEDS_SIZE"
    GEOM_DETAIL_OUTSIDE_WALLS = "GEOM_DETAIL_OUTSIDE_WALLS"
    GEOM_NEGATIVE_COORDINATE = "GEOM_NEGATIVE_COORDINATE"
    GEOM_OUT_OF_BOUNDS = "GEOM_OUT_OF_BOUNDS"
    GEOM_SIZE_EXPANDED = "GEOM_SIZE_EXPANDED"

    # Connectivity
    CONNECT_FLOATING_COMPONENT = "CONNECT_FLOATING_COMPONENT"
    CONNECT_ROOF_GAP = "CONNECT_ROOF_GAP"
    CONNECT_FLOATING_PILLAR = "CONNECT_FLOATING_PILLAR"
    CONNECT_NO_FOUNDATION = "CONNECT_NO_FOUNDATION"

    # Limits
    LIMIT_TOO_MANY_STEPS = "LIMIT_TOO_MANY_STEPS"
    LIMIT_HEIGHT = "LIMIT_HEIGHT"
    LIMIT_VOLUME = "LIMIT_VOLUME"
    LIMIT_WIDTH = "LIMIT_WIDTH"
    LIMIT_DEPTH = "LIMIT_DEPTH"
    LIMIT_UNIQUE_BLOCKS = "LIMIT_UNIQUE_BLOCKS"
    LIMIT_BLOCK_COUNT = "LIMIT_BLOCK_COUNT"
    WE_MISSING_FALLBACK = "WE_MISSING_FALLBACK"
    WE_SELECTION_VOLUME = "WE_SELECTION_VOLUME"
    WE_SELECTION_DIMENSION = "WE_SELECTION_DIMENSION"
    WE_TOO_MANY_COMMANDS = "WE_TOO_MANY_COMMANDS"
    WE_DISABLED = "WE_DISABLED"

    # Quality
    QUALITY_BELOW_THRESHOLD = "QUALITY_BELOW_THRESHOLD"
    QUALITY_MISSING_FEATURE = "QUALITY_MISSING_FEATURE"
    QUALITY_STRUCTURE = "QUALITY_STRUCTURE"
    QUALITY_PROPORTIONS = "QUALITY_PROPORTIONS"
    QUALITY_PALETTE = "QUALITY_PALETTE"
    FEATURE_NOT_FOUND = "FEATURE_NOT_FOUND"
    BUILD_TYPE_DISCOURAGED_OP = "BUILD_TYPE_DISCOURAGED_OP"
    PROFILE_MISSING_ROOF = "PROFILE_MISSING_ROOF"
    PROFILE_MISSING_WALLS = "PROFILE_MISSING_WALLS"
    PROFILE_MISSING_DOOR = "PROFILE_MISSING_DOOR"
    PROFILE_MISSING_FOUNDATION = "PROFILE_MISSING_FOUNDATION"
    PROFILE_EXCEEDS_MAX_HEIGHT = "PROFILE_EXCEEDS_MAX_HEIGHT"
    PROFILE_EXCEEDS_MAX_WIDTH = "PROFILE_EXCEEDS_MAX_WIDTH"
    PROFILE_EXCEEDS_MAX_DEPTH = "PROFILE_EXCEEDS_MAX_DEPTH"
    PROFILE_FLOATING_STRUCTURE = "PROFILE_FLOATING_STRUCTURE"
    PROFILE_SAFETY_FAILED = "PROFILE_SAFETY_FAILED"
    CSD_DETAIL_COUNT = "CSD_DETAIL_COUNT"
    CSD_DETAIL_PERCENT = "CSD_DETAIL_PERCENT"
    CSD_CORE_HEAVY = "CSD_CORE_HEAVY"
    ORGANIC_NO_TRUNK_TAPER = "ORGANIC_NO_TRUNK_TAPER"
    ORGANIC_SYMMETRIC_CANOPY = "ORGANIC_SYMMETRIC_CANOPY"
    ORGANIC_UNNATURAL_GEOMETRY = "ORGANIC_UNNATURAL_GEOMETRY"
    ORGANIC_NO_LEAF_VARIATION = "ORGANIC_NO_LEAF_VARIATION"
    ORGANIC_AUTO_FIXED = "ORGANIC_AUTO_FIXED"


_PREFIX_CATEGORIES = {
    "SCHEMA_": IssueCategory.SCHEMA,
    "VALIDATOR_": IssueCategory.SCHEMA,
    "PARAM_": IssueCategory.PARAMETER,
    "PLACEHOLDER_": IssueCategory.PLACEHOLDER,
    "GEOM_": IssueCategory.GEOMETRY,
    "CONNECT_": IssueCategory.CONNECTIVITY,
    "LIMIT_": IssueCategory.LIMIT,
    "WE_": IssueCategory.LIMIT,
}

# Map every code to its taxonomy category; anything unprefixed is a quality concern.
ISSUE_CATEGORY_MAP: dict[IssueCode, IssueCategory] = {
    code: next(
        (cat for prefix, cat in _PREFIX_CATEGORIES.items() if code.value.startswith(prefix)),
        IssueCategory.QUALITY,
    )
    for code in IssueCode
}

# Categories that signal a generation bug rather than a fixable gap.
TERMINAL_CATEGORIES = frozenset({IssueCategory.PLACEHOLDER})


class ValidationIssue(BaseModel):
    """A single validation finding."""

    code: IssueCode
    severity: Severity
    message: str
    step: Optional[int] = None          # 0-based index of the offending step
    field: Optional[str] = None         # Which parameter triggered this
    position: Optional[Vec3] = None     # Grid position, when there is one
    suggestion: Optional[str] = None    # How to fix it
    details: dict = Field(default_factory=dict)

    class Config:
        use_enum_values = True

    @property
    def category(self) -> IssueCategory:
        return ISSUE_CATEGORY_MAP[IssueCode(self.code)]

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        return self.message


class QualityScore(BaseModel):
    """Profile-weighted quality score."""

    raw: float = Field(ge=0, le=1)
    weighted: float = Field(ge=0, le=1)
    grade: str = Field(description="A..F")
    passed: bool


class ValidationReport(BaseModel):
    """Aggregated findings of one validation pass."""

    passed: bool
    summary: dict = Field(
        description="Count of issues by severity",
        default_factory=lambda: {"error": 0, "warning": 0, "info": 0},
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    verdict: str = ""

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @classmethod
    def build(cls, issues: list[ValidationIssue]) -> "ValidationReport":
        """Build a report from issues, keeping them in check order."""
        summary = {"error": 0, "warning": 0, "info": 0}
        for issue in issues:
            summary[issue.severity] += 1

        passed = summary["error"] == 0
        if passed and summary["warning"] == 0:
            verdict = "PASS: no issues found."
        elif passed:
            verdict = f"PASS: {summary['warning']} advisory warning(s)."
        else:
            verdict = f"FAIL: {summary['error']} error(s) must be resolved, {summary['warning']} warning(s)."

        return cls(passed=passed, summary=summary, issues=list(issues), verdict=verdict)
