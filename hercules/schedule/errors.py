"""Error types for the schedule module.

Configuration and integrity problems never raise: a broken schedule degrades
to a rest day. Only persistence and explicit draft validation raise.
"""


class ScheduleError(RuntimeError):
    """Base class for schedule errors."""


class ScheduleRepositoryError(ScheduleError):
    """Raised when the remote store cannot read or write schedule state.

    The store treats this as "changes did not stick": it discards the
    optimistic local mutation and rehydrates from the repository.
    """


class ScheduleValidationError(ScheduleError, ValueError):
    """Raised when a draft cannot be built into a committable schedule."""
