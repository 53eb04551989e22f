"""Validation Engine: normalises, checks, scores and (optionally) repairs a blueprint.

States:
    Normalizing -> ParallelChecks -> SequentialPostChecks -> Scored -> Accepted | RepairRequested

The independent checks share no mutable state, so they run concurrently on
worker threads and are merged back in check order. Coordinate-bounds growth
happens before that phase; organic auto-fix and spatial connectivity run after
it because they depend on its outcome.

Usage:
    engine = BlueprintValidator(limits=settings.safety_limits())
    result = await engine.validate(raw_blueprint, analysis)
    if not result.valid:
        # result.errors lists every blocking issue
"""

import asyncio
import json
import time
from typing import Awaitable, Callable, Optional, Union

import structlog

from buildguard.config import GeometryConfig, SafetyLimits, ScoringConfig, SpatialConfig
from buildguard.envelope_builder import create_envelope, extract_payload_for_builder
from buildguard.models.analysis import BuildAnalysis
from buildguard.models.blueprint import Blueprint
from buildguard.models.events import ValidationCompletedEvent, ValidationStartedEvent
from buildguard.models.issues import IssueCode, Severity, ValidationIssue, ValidationReport
from buildguard.models.results import QualityReport, ValidationResult
from buildguard.validators.base import BaseValidator
from buildguard.validators.block_validator import BlockValidator
from buildguard.validators.build_type_validator import BuildTypeValidator
from buildguard.validators.coordinate_bounds import CoordinateBoundsValidator
from buildguard.validators.csd_validator import CSDBalanceValidator
from buildguard.validators.feature_validator import FeatureValidator
from buildguard.validators.geometry_validator import GeometryValidator
from buildguard.validators.limits_validator import LimitsValidator
from buildguard.validators.normalizer import BlueprintNormalizer
from buildguard.validators.operation_params_validator import OperationParamsValidator
from buildguard.validators.organic import fix_tree_quality, is_organic_build, validate_tree_quality
from buildguard.validators.placeholder_validator import PlaceholderValidator
from buildguard.validators.profile_validator import ProfileValidator, grade_for
from buildguard.validators.profiles import detect_build_type
from buildguard.validators.quality_validator import QualityValidator
from buildguard.validators.schema_validator import SchemaValidator, check_required_fields, parse_blueprint
from buildguard.validators.spatial_validator import SpatialValidator, format_connectivity_issues_for_repair
from buildguard.validators.worldedit_validator import WorldEditValidator

logger = structlog.get_logger()


class BlueprintValidator:
    """Runs every check against a blueprint and produces a ValidationResult.

    Design principles:
        - Deterministic: same input, same issues, same order
        - Isolated: a crashing check becomes an issue, never an exception
        - Configured: every limit comes from the injected objects
        - Observable: logs every run with per-check timings
    """

    def __init__(
        self,
        limits: Optional[SafetyLimits] = None,
        scoring: Optional[ScoringConfig] = None,
        spatial: Optional[SpatialConfig] = None,
        geometry: Optional[GeometryConfig] = None,
        block_checker: Optional[Callable[[str], bool]] = None,
        validators: Optional[list[BaseValidator]] = None,
        repair_engine=None,
        event_callback: Optional[Callable[[dict], Awaitable[None]]] = None,
    ):
        """Initialize with default validators or a custom list.

        Args:
            limits: Safety ceilings; also supplies max_retries
            scoring: Penalties and thresholds for the quality scorers
            spatial: Occupancy grid and connectivity thresholds
            geometry: Containment tolerances
            block_checker: Predicate for known block ids (registry lookup)
            validators: Optional parallel-phase validators. If None, uses all defaults.
            repair_engine: Optional RepairEngine used by validate_and_repair()
            event_callback: Optional async callback for validation progress events
        """
        self.limits = limits or SafetyLimits()
        self.scoring = scoring or ScoringConfig()
        self.geometry = geometry or GeometryConfig()
        self.block_checker = block_checker

        self.normalizer = BlueprintNormalizer()
        self.bounds = CoordinateBoundsValidator(self.limits)
        self.worldedit = WorldEditValidator(self.limits.world_edit)
        self.spatial = SpatialValidator(spatial)
        self.profile_validator = ProfileValidator(self.scoring)
        self.quality_validator = QualityValidator(self.limits, self.scoring)
        self.repair_engine = repair_engine
        self.event_callback = event_callback

        self.validators = validators or self._default_validators()

    def _default_validators(self) -> list[BaseValidator]:
        """Create the default parallel-phase chain; merge order follows this list."""
        return [
            SchemaValidator(),
            BlockValidator(self.block_checker),
            PlaceholderValidator(),
            OperationParamsValidator(),
            FeatureValidator(),
            BuildTypeValidator(),
            GeometryValidator(self.geometry),
            LimitsValidator(self.limits),
            self.worldedit,
            CSDBalanceValidator(self.scoring),
        ]

    async def validate(
        self,
        raw: Union[dict, str],
        analysis: Optional[BuildAnalysis] = None,
    ) -> ValidationResult:
        """Single validation pass over a raw blueprint.

        Args:
            raw: Generator output (dict or JSON string)
            analysis: What the request asked for

        Returns:
            ValidationResult; terminal=True when repair must not be attempted
        """
        start_time = time.perf_counter()

        # ── Normalizing ──
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                return self._terminal(None, [ValidationIssue(
                    code=IssueCode.SCHEMA_INVALID_TYPE,
                    severity=Severity.ERROR,
                    message=f"Cannot parse blueprint JSON: {str(e)}",
                    suggestion="Ensure the generator output is valid JSON",
                )])

        required = check_required_fields(raw)
        if required:
            logger.warning("blueprint_missing_fields", errors=len(required))
            return self._terminal(raw, required)

        normalized = self.normalizer.normalize(raw)
        if normalized.errors:
            # Unresolved placeholders are a generation bug, not a repairable gap.
            logger.warning("unresolved_placeholders", errors=len(normalized.errors))
            return self._terminal(raw, normalized.errors)

        blueprint, parse_issues = parse_blueprint(normalized.blueprint)
        if blueprint is None:
            return self._terminal(normalized.blueprint, parse_issues)

        blueprint, issues = self.bounds.apply(blueprint)

        # ── Parallel checks ──
        validator_timings: dict[str, float] = {}
        results = await asyncio.gather(*(
            asyncio.to_thread(self._run_validator, validator, blueprint, analysis)
            for validator in self.validators
        ))
        for validator, (found, duration) in zip(self.validators, results):
            issues.extend(found)
            validator_timings[validator.name] = duration

        # ── Sequential post-checks ──
        build_type = detect_build_type(blueprint, analysis)
        if is_organic_build(build_type):
            blueprint, organic_issues = self._check_organic(blueprint)
            seen = {i.message for i in issues}
            issues.extend(i for i in organic_issues if i.message not in seen)

        connectivity = self._run_validator(self.spatial, blueprint, analysis)[0]
        issues.extend(connectivity)

        # ── Scored ──
        quality, scoring_issues = self._score(blueprint, analysis, build_type)
        issues.extend(scoring_issues)
        _, we_stats = self.worldedit.check(blueprint)

        report = ValidationReport.build(issues)
        total_duration = (time.perf_counter() - start_time) * 1000

        logger.info(
            "validation_complete",
            passed=report.passed,
            build_type=build_type,
            summary=report.summary,
            quality=round(quality.score, 3),
            steps=len(blueprint.steps),
            duration_ms=round(total_duration, 2),
            validator_timings=validator_timings,
        )

        return ValidationResult(
            valid=report.passed,
            blueprint=blueprint,
            errors=[i.message for i in report.errors],
            warnings=[i.message for i in report.warnings],
            issues=report.issues,
            quality=quality,
            worldedit=we_stats,
            build_type=build_type,
        )

    def _run_validator(
        self, validator: BaseValidator, blueprint: Blueprint, analysis: Optional[BuildAnalysis]
    ) -> tuple[list[ValidationIssue], float]:
        v_start = time.perf_counter()
        try:
            return validator.validate(blueprint, analysis), self._elapsed(v_start)
        except Exception as e:
            logger.error("validator_failed", validator=validator.name, error=str(e))
            # Don't let one broken validator kill the whole pipeline
            return [ValidationIssue(
                code=IssueCode.VALIDATOR_CRASHED,
                severity=Severity.ERROR,
                message=f"Validator '{validator.name}' crashed: {str(e)}",
            )], self._elapsed(v_start)

    @staticmethod
    def _elapsed(since: float) -> float:
        return round((time.perf_counter() - since) * 1000, 2)

    def _check_organic(self, blueprint: Blueprint) -> tuple[Blueprint, list[ValidationIssue]]:
        """Tree checks, with one auto-fix when primitive geometry is the problem."""
        result = validate_tree_quality(blueprint, self.scoring)
        issues = []

        if not result.valid and not result.checks["no_unnatural_geometry"].passed:
            fixed = fix_tree_quality(blueprint)
            if fixed is not blueprint:
                blueprint = fixed
                issues.append(ValidationIssue(
                    code=IssueCode.ORGANIC_AUTO_FIXED,
                    severity=Severity.INFO,
                    message="Organic quality: replaced primitive spheres and cylinders with natural shapes",
                ))
                # rewritten steps go through the bounds check again
                blueprint, bound_issues = self.bounds.apply(blueprint)
                issues.extend(bound_issues)
                result = validate_tree_quality(blueprint, self.scoring)

        issues.extend(result.issues)
        return blueprint, issues

    def _score(
        self, blueprint: Blueprint, analysis: Optional[BuildAnalysis], build_type: str
    ) -> tuple[QualityReport, list[ValidationIssue]]:
        """Combine the profile score with the legacy score; the lower one wins."""
        profile = self.profile_validator.evaluate(blueprint, analysis, build_type)
        legacy = self.quality_validator.score(blueprint, analysis)
        issues = profile.errors + profile.warnings

        if self.limits.require_feature_completion and not profile.safety_passed:
            issues.append(ValidationIssue(
                code=IssueCode.PROFILE_SAFETY_FAILED,
                severity=Severity.ERROR,
                message=f"Blueprint fails safety checks for profile '{profile.profile.name}'",
            ))

        combined = min(profile.quality.weighted, legacy.score)
        passed = combined >= self.limits.min_quality_score
        if not passed:
            issues.append(ValidationIssue(
                code=IssueCode.QUALITY_BELOW_THRESHOLD,
                severity=Severity.WARNING,
                message=f"Quality score {combined:.2f} is below the minimum {self.limits.min_quality_score:.2f}",
                details={"penalties": legacy.penalties},
            ))

        quality = QualityReport(
            score=combined,
            grade=grade_for(combined, self.scoring),
            profile=profile.profile.id,
            profile_score=profile.quality,
            legacy_score=legacy.score,
            passed=passed,
        )
        return quality, issues

    def _terminal(self, raw, issues: list[ValidationIssue]) -> ValidationResult:
        return ValidationResult(
            valid=False,
            raw_blueprint=raw if isinstance(raw, dict) else None,
            errors=[i.message for i in issues if i.is_error],
            issues=issues,
            terminal=True,
        )

    async def validate_and_repair(
        self,
        raw: Union[dict, str],
        analysis: Optional[BuildAnalysis] = None,
    ) -> ValidationResult:
        """Validate, and on failure hand the blueprint to the repair engine.

        Up to limits.max_retries validation passes. A failed repair, a terminal
        result or an exhausted budget returns the last blueprint with its errors.
        """
        route = analysis.route if analysis else None
        current = raw
        retries = 0
        last_repair = None

        while True:
            await self._emit(ValidationStartedEvent(
                retry=retries,
                build_type=analysis.build_type if analysis and analysis.build_type else "unknown",
            ))
            result = await self.validate(current, analysis)
            result.retries = retries
            result.repair = last_repair
            await self._emit(ValidationCompletedEvent(
                retry=retries,
                valid=result.valid,
                errors=len(result.errors),
                warnings=len(result.warnings),
                quality_score=result.quality.score if result.quality else None,
            ))

            if result.valid or result.terminal or result.blueprint is None:
                return result
            if self.repair_engine is None or retries >= self.limits.max_retries - 1:
                logger.warning("validation_failed_final", retries=retries, errors=len(result.errors))
                return result

            logger.info("repair_requested", attempt=retries + 1, errors=len(result.errors))
            envelope = create_envelope(result.blueprint, route=route, limits=self.limits)
            errors = list(result.errors)
            connectivity = [i for i in result.issues if i.code.startswith("CONNECT_")]
            if connectivity:
                errors.append(format_connectivity_issues_for_repair(connectivity))

            last_repair = await self.repair_engine.repair(envelope, errors, route)
            retries += 1
            if not last_repair.success:
                result.retries = retries
                result.repair = last_repair
                logger.warning("repair_failed", retries=retries, attempts=len(last_repair.attempts))
                return result

            current = extract_payload_for_builder(last_repair.envelope)

    async def validate_with_context(
        self,
        raw: Union[dict, str],
        analysis: Optional[BuildAnalysis] = None,
        previous: Optional[ValidationResult] = None,
    ) -> ValidationResult:
        """Validate with awareness of a previous result (for revision loops).

        Error codes that persist from the previous round are called out in the warnings.
        """
        result = await self.validate(raw, analysis)

        if previous:
            prev_codes = {i.code for i in previous.issues if i.is_error}
            curr_codes = {i.code for i in result.issues if i.is_error}
            recurring = sorted(prev_codes & curr_codes)
            if recurring:
                result.warnings.append(
                    f"{len(recurring)} error(s) persist from previous revision: {', '.join(recurring)}"
                )

        return result

    async def _emit(self, event) -> None:
        if self.event_callback:
            await self.event_callback(event.model_dump())

    def add_validator(self, validator: BaseValidator) -> None:
        """Add a custom validator to the parallel phase."""
        self.validators.append(validator)

    def remove_validator(self, validator_name: str) -> None:
        """Remove a validator by name."""
        self.validators = [v for v in self.validators if v.name != validator_name]
