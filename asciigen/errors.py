"""Exception hierarchy raised by the ASCII animation engine."""

from __future__ import annotations

from typing import Optional


class AsciiGenError(Exception):
    """Base class for all engine errors."""


class RetryExhaustedError(AsciiGenError):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, label: str, attempts: int, last_error: Optional[BaseException]) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"{label} failed after {attempts} attempts{detail}")


class PlanValidationError(AsciiGenError, ValueError):
    """The model returned a plan object that does not satisfy the schema."""


class PlanGenerationError(AsciiGenError):
    """Planning could not produce a valid plan; the generation is fatal."""


class InvalidTransitionError(AsciiGenError):
    """A status change would move a generation backwards or out of a terminal state."""


class PreconditionError(AsciiGenError):
    """A request was rejected before any model call was attempted."""


class CredentialRequiredError(PreconditionError):
    pass


class ActiveGenerationError(PreconditionError):
    pass


class GenerationNotFoundError(PreconditionError):
    pass


class InvalidCombinationError(PreconditionError):
    pass


class BlendError(AsciiGenError):
    """The model returned output that could not be used as combined frames."""


class GenerationFailedError(AsciiGenError):
    """A generation reached the ``failed`` state."""

    def __init__(self, generation_id: str, message: str) -> None:
        self.generation_id = generation_id
        self.message = message
        super().__init__(message)
