"""Error handling utilities."""

from typing import Optional


class ScheduleAgentError(Exception):
    """Base exception for the schedule agent."""
    pass


class TransportError(ScheduleAgentError):
    """Language-model endpoint call failed (network error or non-success status)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body_excerpt: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body_excerpt = body_excerpt


class ProtocolError(ScheduleAgentError):
    """Model output could not be parsed into a JSON object."""
    pass


class RoundBudgetExceededError(ScheduleAgentError):
    """Model kept requesting tools and never produced a final answer."""
    pass


class ValidationFailedError(ScheduleAgentError):
    """Direct user input failed domain validation."""
    pass


class NothingSelectedError(ScheduleAgentError):
    """Apply was requested without any selected operation."""
    pass


class OperationApplyError(ScheduleAgentError):
    """A single proposal operation could not be applied."""
    pass


class TaskNotFoundError(OperationApplyError):
    """Referenced task does not exist."""
    pass


class ReferentialIntegrityError(OperationApplyError):
    """Referenced project/task type is missing, or is still referenced on delete."""
    pass


class InvalidTimeRangeError(OperationApplyError):
    """Timestamp is unparseable or end precedes start."""
    pass


class StoreError(ScheduleAgentError):
    """Persistence operation error."""
    pass
