"""Errors raised by the scheduling core.

Callers (the HTTP layer, tools) map these to user-visible outcomes; the
core never reports broken position or day-break invariants because the
store's constraints and transactional shifts keep them from happening.
"""


class ScheduleError(Exception):
    """Base class for scheduling failures surfaced to callers."""

    retryable = False


class NotFound(ScheduleError):
    """A strip, day break, banner, scene or schedule does not exist in the project."""


class InvalidArgument(ScheduleError, ValueError):
    """An input is out of range or of the wrong type."""


class PermissionDenied(ScheduleError):
    """The caller lacks edit rights on the project."""


class ConflictOnConcurrentWrite(ScheduleError):
    """A concurrent structural write on the same schedule prevented the commit."""

    retryable = True


def require_int(name, value):
    # bool is an int subclass but never a valid position.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    return value


__all__ = [
    "ScheduleError",
    "NotFound",
    "InvalidArgument",
    "PermissionDenied",
    "ConflictOnConcurrentWrite",
    "require_int",
]
