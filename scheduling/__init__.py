"""Appointment scheduling engine for the Zantra Medical clinic platform."""

from .config import SchedulingSettings
from .conflicts import ConflictCandidate, ConflictDetector, TimeRange, overlaps
from .errors import (
    AppointmentNotFoundError,
    ConflictError,
    InvalidTransitionError,
    RecurrenceError,
    ResourceNotFoundError,
    SchedulingError,
    ValidationError,
)
from .layout import CellLayout, hour_cells, layout_day, layout_in_cell
from .lifecycle import StatusLifecycle
from .models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    BookingRequest,
    RecurrenceFrequency,
    RecurrencePattern,
    Reminder,
    ReminderChannel,
    Resource,
    ResourceCategory,
)
from .recurrence import expand
from .registry import AppointmentTypeCatalog, ResourceRegistry
from .service import OccurrenceConflict, RecurringBookingResult, SchedulingService
from .store import AppointmentRepository

__all__ = [
    "Appointment",
    "AppointmentNotFoundError",
    "AppointmentRepository",
    "AppointmentStatus",
    "AppointmentType",
    "AppointmentTypeCatalog",
    "BookingRequest",
    "CellLayout",
    "ConflictCandidate",
    "ConflictDetector",
    "ConflictError",
    "InvalidTransitionError",
    "OccurrenceConflict",
    "RecurrenceError",
    "RecurrenceFrequency",
    "RecurrencePattern",
    "RecurringBookingResult",
    "Reminder",
    "ReminderChannel",
    "Resource",
    "ResourceCategory",
    "ResourceNotFoundError",
    "ResourceRegistry",
    "SchedulingError",
    "SchedulingService",
    "SchedulingSettings",
    "StatusLifecycle",
    "TimeRange",
    "ValidationError",
    "expand",
    "hour_cells",
    "layout_day",
    "layout_in_cell",
    "overlaps",
]
