"""Exceptions raised across the repair boundary.

Validators never raise for malformed blueprints; they return issues.
These are reserved for the model collaborator and the repair loop.
"""


class BuildGuardError(Exception):
    """Base class for all BuildGuard errors."""


class RepairError(BuildGuardError):
    """A repair attempt could not produce a usable payload."""


class GenerationTimeoutError(RepairError, TimeoutError):
    """The model call did not finish within its timeout."""


class ParseError(RepairError, ValueError):
    """The model returned output that could not be recovered as JSON."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
