"""Exception taxonomy for the scheduling engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - import cycle guard for annotations only
    from .models import Appointment, AppointmentStatus

__all__ = [
    "AppointmentNotFoundError",
    "ConflictError",
    "InvalidTransitionError",
    "RecurrenceError",
    "ResourceNotFoundError",
    "SchedulingError",
    "ValidationError",
]


class SchedulingError(RuntimeError):
    """Base exception for scheduling engine errors."""


class ValidationError(SchedulingError, ValueError):
    """Raised when a request is malformed (bad range, empty resource set, ...)."""


class ConflictError(SchedulingError):
    """Raised when a booking would double-book one of its resources."""

    def __init__(self, conflicts: Sequence["Appointment"], message: Optional[str] = None) -> None:
        self.conflicts: List["Appointment"] = list(conflicts)
        if message is None:
            ids = ", ".join(appointment.id for appointment in self.conflicts)
            message = f"Requested time range conflicts with appointment(s): {ids}"
        super().__init__(message)


class InvalidTransitionError(SchedulingError):
    """Raised when a status change is not permitted by the lifecycle."""

    def __init__(
        self,
        current: "AppointmentStatus",
        requested: "AppointmentStatus",
        reason: Optional[str] = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.reason = reason
        message = f"Cannot transition appointment from '{current.value}' to '{requested.value}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RecurrenceError(SchedulingError):
    """Raised when a recurrence pattern is invalid or expands too far."""


class AppointmentNotFoundError(SchedulingError, LookupError):
    """Raised when an appointment id is unknown to the repository."""


class ResourceNotFoundError(SchedulingError, LookupError):
    """Raised when a resource or appointment type id is not registered."""
