from typing import TYPE_CHECKING, Optional

from kubestep.core.constants import FailureReason

if TYPE_CHECKING:
    from kubestep.execution.outcome import RunOutcome


class AppException(Exception):
    """Base application exception."""

    pass


class ConfigurationError(AppException):
    """Step configuration is missing a required field or is malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class TransportError(AppException):
    """A control-plane call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StepFailure(AppException):
    """Failure reported to the host framework, tagged with a reason category."""

    reason: FailureReason = FailureReason.UNEXPECTED_FAILURE

    def __init__(self, message: str, outcome: Optional["RunOutcome"] = None):
        super().__init__(message)
        self.message = message
        self.outcome = outcome


class UnexpectedFailure(StepFailure):
    reason = FailureReason.UNEXPECTED_FAILURE


class ExecutionTimeoutFailure(StepFailure):
    reason = FailureReason.EXECUTION_TIMEOUT_FAILURE


class InterruptionFailure(StepFailure):
    reason = FailureReason.INTERRUPTION_FAILURE
