"""Error taxonomy shared by the stores, the scheduling core, and the HTTP layer."""

from typing import Any, Optional


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class ValidationError(SchedulerError):
    """Malformed date, time, service type, or range input."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class SlotConflictError(SchedulerError):
    """The slot is already held or booked.

    An expected outcome of normal operation: callers surface it as
    "not available" rather than as a failure.
    """

    def __init__(self, message: str, slot_key: Any = None, conflicts: int = 1) -> None:
        super().__init__(message)
        self.slot_key = slot_key
        self.conflicts = conflicts


class TemplateConflictError(SchedulerError):
    """A recurring template clashes with an existing one."""

    def __init__(
        self,
        message: str,
        conflicts: Optional[list[Any]] = None,
        suggestions: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []
        self.suggestions = suggestions or []


class NotFoundError(SchedulerError):
    """A referenced booking or template does not exist."""


class StorageUnavailableError(SchedulerError):
    """The underlying store could not be reached.

    Never to be read as "no conflicts found".
    """


class InvalidTransitionError(SchedulerError):
    """Raised when a booking status change is not valid from its current state."""


class ConcurrentUpdateError(InvalidTransitionError):
    """The booking changed between read and write; re-read and retry."""

    def __init__(self, message: str, booking_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.booking_id = booking_id
