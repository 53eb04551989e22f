"""Progress event models emitted by the orchestrator and the repair engine.

Callers pass an async callback; events arrive as JSON-safe dicts.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class BaseEvent(BaseModel):
    """Base model for all progress events."""

    type: str
    timestamp: datetime = None

    def model_post_init(self, __context):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow()

    def model_dump(self, **kwargs):
        """Always serialize datetimes as ISO strings for JSON safety."""
        kwargs.setdefault("mode", "json")
        return super().model_dump(**kwargs)


class ValidationStartedEvent(BaseEvent):
    type: Literal["validation_started"] = "validation_started"
    retry: int
    build_type: str


class ValidationCompletedEvent(BaseEvent):
    type: Literal["validation_completed"] = "validation_completed"
    retry: int
    valid: bool
    errors: int
    warnings: int
    quality_score: Optional[float] = None


class RepairAttemptEvent(BaseEvent):
    """Emitted after every repair attempt, successful or not."""

    type: Literal["repair_attempt"] = "repair_attempt"
    attempt: int
    strategy: str
    success: bool
    message: str


class FallbackAppliedEvent(BaseEvent):
    type: Literal["fallback_applied"] = "fallback_applied"
    strategy: str
    message: str


class ErrorEvent(BaseEvent):
    """Emitted when a repair attempt raises."""

    type: Literal["error"] = "error"
    message: str
    recoverable: bool = True
