"""Repair Engine: bounded model-assisted repair, then deterministic fallbacks.

State machine:
    LLMRepair(attempt) -> Revalidate -> Success | NextAttempt | FallbackChain

Model attempts run strictly one after another, each fed the errors of the
previous one. A failing attempt (timeout, unusable JSON, anything else) is
logged and the loop moves on. When the model attempts are spent the original
envelope goes through scale_reduction, simplify_passes and kind_switch in that
order; the first one that revalidates wins. Version and id of the envelope
are preserved throughout.
"""

from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, NamedTuple, Optional

import structlog

from buildguard.agents.repairer import BlueprintRepairer
from buildguard.config import RepairConfig, SafetyLimits, ScoringConfig
from buildguard.envelope_builder import extract_payload_for_builder, rebuild_envelope, validate_envelope
from buildguard.models.analysis import RouteDecision
from buildguard.models.envelope import Envelope, ValidationInfo
from buildguard.models.events import ErrorEvent, FallbackAppliedEvent, RepairAttemptEvent
from buildguard.models.issues import IssueCode
from buildguard.models.repair import FALLBACK_ORDER, RepairAttempt, RepairResult, RepairStrategy
from buildguard.models.results import ValidationResult
from buildguard.repair.fallbacks import is_reduction, kind_switch, scale_reduction, simplify_passes
from buildguard.validators.profile_validator import ProfileValidator
from buildguard.validators.schema_validator import parse_blueprint

logger = structlog.get_logger()

EventCallback = Callable[[dict], Awaitable[None]]


class Revalidation(NamedTuple):
    """Outcome of re-checking a candidate envelope."""

    accepted: bool
    envelope: Envelope
    errors: list[str]
    quality_score: Optional[float] = None


class RepairEngine:
    """Drives one repair call for a failing envelope."""

    def __init__(
        self,
        repairer: BlueprintRepairer,
        config: Optional[RepairConfig] = None,
        limits: Optional[SafetyLimits] = None,
        scoring: Optional[ScoringConfig] = None,
        event_callback: Optional[EventCallback] = None,
    ):
        self.repairer = repairer
        self.config = config or RepairConfig()
        self.limits = limits or SafetyLimits()
        self.profile_validator = ProfileValidator(scoring)
        self.event_callback = event_callback
        self.fallbacks = {
            RepairStrategy.SCALE_REDUCTION: partial(scale_reduction, factor=self.config.fallback_scale_factor),
            RepairStrategy.SIMPLIFY_PASSES: simplify_passes,
            RepairStrategy.KIND_SWITCH: kind_switch,
        }

    async def repair(
        self,
        envelope: Envelope,
        errors: list[str],
        intent: Optional[RouteDecision] = None,
    ) -> RepairResult:
        """Repair a failing envelope.

        Args:
            envelope: The envelope that failed validation
            errors: Messages describing why it failed
            intent: Routing decision for the original request

        Returns:
            RepairResult; on failure it carries the last candidate and its errors
        """
        attempts: list[RepairAttempt] = []
        current, current_errors = envelope, list(errors)

        logger.info("repair_started", envelope_id=envelope.envelope_id, errors=len(errors))

        # ── Model-assisted attempts ──
        for attempt in range(self.config.max_attempts):
            record = RepairAttempt(attempt_index=len(attempts), strategy=RepairStrategy.LLM)
            try:
                payload = await self.repairer.repair(current, current_errors, intent, attempt)
                candidate = rebuild_envelope(current, payload)
                check = self._revalidate(candidate, intent)
                record.envelope = check.envelope
                record.success = check.accepted
                record.errors = check.errors
                record.quality_score = check.quality_score
                current, current_errors = check.envelope, check.errors or current_errors
            except Exception as e:
                logger.warning("repair_attempt_failed", attempt=attempt + 1, error=str(e), error_type=type(e).__name__)
                record.errors = [str(e)]
                await self._emit(ErrorEvent(message=f"Repair attempt {attempt + 1} failed: {str(e)}"))

            attempts.append(record)
            await self._emit(RepairAttemptEvent(
                attempt=attempt + 1,
                strategy=RepairStrategy.LLM.value,
                success=record.success,
                message=self._attempt_message(record),
            ))

            if record.success:
                logger.info("repair_succeeded", attempt=attempt + 1, quality=record.quality_score)
                return RepairResult(success=True, envelope=current, attempts=attempts)

        # ── Deterministic fallbacks, on the original envelope ──
        logger.info("repair_llm_exhausted", attempts=len(attempts))
        for strategy in FALLBACK_ORDER:
            record = RepairAttempt(attempt_index=len(attempts), strategy=strategy)
            try:
                candidate = self.fallbacks[strategy](envelope)
                if candidate is not None and is_reduction(envelope, candidate):
                    check = self._revalidate(candidate, intent)
                    record.envelope = check.envelope
                    record.success = check.accepted
                    record.errors = check.errors
                    record.quality_score = check.quality_score
                else:
                    record.errors = [f"{strategy.value} does not apply"]
            except Exception as e:
                logger.warning("fallback_failed", strategy=strategy.value, error=str(e))
                record.errors = [str(e)]
            attempts.append(record)

            if record.success:
                logger.info("fallback_applied", strategy=strategy.value, quality=record.quality_score)
                await self._emit(FallbackAppliedEvent(
                    strategy=strategy.value,
                    message=f"Applied {strategy.value} after {self.config.max_attempts} failed repair attempt(s)",
                ))
                return RepairResult(
                    success=True,
                    envelope=record.envelope,
                    attempts=attempts,
                    fallback_used=True,
                    fallback_strategy=strategy,
                )

        logger.error("repair_exhausted", attempts=len(attempts), errors=len(current_errors))
        return RepairResult(
            success=False,
            envelope=current,
            attempts=attempts,
            fallback_used=True,
            errors=current_errors,
        )

    def _revalidate(self, candidate: Envelope, intent: Optional[RouteDecision]) -> Revalidation:
        """Accept when the envelope is valid, profile safety holds and quality meets the minimum."""
        check = validate_envelope(candidate, self.limits)
        if not check.valid:
            return Revalidation(False, candidate, [i.message for i in check.errors])

        blueprint, issues = parse_blueprint(extract_payload_for_builder(check.envelope))
        if blueprint is None:
            return Revalidation(False, candidate, [i.message for i in issues])

        build_type = (intent.build_type if intent else None) or candidate.build_type
        profile = self.profile_validator.evaluate(blueprint, build_type=build_type)
        score = profile.quality.weighted

        errors = [i.message for i in profile.errors]
        if not profile.safety_passed:
            errors += [i.message for i in profile.warnings if i.code == IssueCode.PROFILE_FLOATING_STRUCTURE]
        if score < self.config.min_quality_score:
            errors.append(f"Quality score {score:.2f} is below the minimum {self.config.min_quality_score:.2f}")

        accepted = profile.safety_passed and score >= self.config.min_quality_score
        if accepted:
            candidate = candidate.model_copy(update={"validation": ValidationInfo(
                profile=profile.profile.id,
                quality_score=round(score, 4),
                quality_grade=profile.quality.grade,
                warnings=[w.model_dump(mode="json") for w in profile.warnings],
                validated=True,
                validated_at=datetime.utcnow(),
            )})
        return Revalidation(accepted, candidate, errors, score)

    @staticmethod
    def _attempt_message(record: RepairAttempt) -> str:
        if record.success:
            return f"Repair attempt {record.attempt_index + 1} produced a valid blueprint"
        return f"Repair attempt {record.attempt_index + 1} still invalid ({len(record.errors)} error(s))"

    async def _emit(self, event) -> None:
        if self.event_callback:
            await self.event_callback(event.model_dump())


def needs_repair(
    envelope: Envelope,
    result: Optional[ValidationResult] = None,
    config: Optional[RepairConfig] = None,
) -> bool:
    """True when the envelope is invalid or its quality falls under the repair minimum."""
    config = config or RepairConfig()
    if result is None:
        return not validate_envelope(envelope).valid

    score = result.quality.score if result.quality else None
    return not result.valid or (score is not None and score < config.min_quality_score)
