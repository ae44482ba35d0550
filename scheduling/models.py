"""Data model for the scheduling engine.

All entities are frozen dataclasses. Changing an appointment always
produces a new instance (see :func:`dataclasses.replace`), which keeps
recurrence occurrences independent of one another and of their pattern.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .errors import ValidationError

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "BookingRequest",
    "RecurrenceFrequency",
    "RecurrencePattern",
    "Reminder",
    "ReminderChannel",
    "Resource",
    "ResourceCategory",
]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _LooseEnum(str, Enum):
    """String enum that parses case-insensitively and accepts member names."""

    @classmethod
    def parse(cls, value: object) -> "_LooseEnum":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if normalized in (member.value, member.name.lower()):
                    return member
        raise ValidationError(f"Unsupported {cls.__name__} value: {value!r}")


class ResourceCategory(_LooseEnum):
    ROOM = "room"
    EQUIPMENT = "equipment"
    PROVIDER = "provider"
    STAFF = "staff"


class AppointmentStatus(_LooseEnum):
    SCHEDULED = "scheduled"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class RecurrenceFrequency(_LooseEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ReminderChannel(_LooseEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


REMINDER_LEAD_TIMES = ("15m", "30m", "1h", "24h", "48h")


def _require_text(value: object, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return value.strip()


def ensure_utc(value: datetime) -> datetime:
    """Read a naive datetime as UTC; aware values are returned unchanged."""

    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def coerce_datetime(value: object, label: str = "timestamp") -> datetime:
    """Accept a datetime or an ISO 8601 string (``Z`` suffix allowed); naive values are read as UTC."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"{label} must be ISO formatted") from exc
        return ensure_utc(parsed)
    raise ValidationError(f"{label} must be a datetime instance")


def coerce_date(value: object, label: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValidationError(f"{label} must be ISO formatted") from exc
    raise ValidationError(f"Unsupported {label} format")


def coerce_resource_ids(values: object) -> FrozenSet[str]:
    if isinstance(values, str) or not isinstance(values, Iterable):
        raise ValidationError("resource_ids must be a collection of identifiers")
    resource_ids = frozenset(_require_text(value, "resource id") for value in values)
    if not resource_ids:
        raise ValidationError("resource_ids must not be empty")
    return resource_ids


def validate_range(start_time: datetime, end_time: datetime) -> None:
    if not isinstance(start_time, datetime) or not isinstance(end_time, datetime):
        raise ValidationError("start_time and end_time must be datetime instances")
    try:
        ordered = start_time < end_time
    except TypeError as exc:
        raise ValidationError("start_time and end_time must share timezone awareness") from exc
    if not ordered:
        raise ValidationError("end_time must be after start_time")


@dataclass(frozen=True)
class Resource:
    """A schedulable room, piece of equipment, provider, or staff member."""

    id: str
    name: str
    category: ResourceCategory
    color: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Resource":
        return cls(
            id=_require_text(str(payload.get("id", "")), "resource id"),
            name=str(payload.get("name", "")),
            # The clinic front end stores the category under "type".
            category=ResourceCategory.parse(payload.get("category") or payload.get("type")),
            color=payload.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "category": self.category.value, "color": self.color}


@dataclass(frozen=True)
class AppointmentType:
    id: str
    name: str
    default_duration_minutes: int
    color: Optional[str] = None

    def __post_init__(self) -> None:
        if self.default_duration_minutes <= 0:
            raise ValidationError("default_duration_minutes must be positive")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "AppointmentType":
        duration = payload.get("default_duration_minutes", payload.get("defaultDuration"))
        try:
            duration_minutes = int(duration)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Appointment type requires an integer default duration") from exc
        return cls(
            id=_require_text(str(payload.get("id", "")), "appointment type id"),
            name=str(payload.get("name", "")),
            default_duration_minutes=duration_minutes,
            color=payload.get("color"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "default_duration_minutes": self.default_duration_minutes,
            "color": self.color,
        }


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: RecurrenceFrequency
    interval: int
    end_date: date

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RecurrencePattern":
        try:
            interval = int(payload.get("interval", 1))
        except (TypeError, ValueError) as exc:
            raise ValidationError("recurrence interval must be an integer") from exc
        end_raw = payload.get("end_date", payload.get("endDate"))
        if end_raw is None:
            raise ValidationError("recurrence end_date is required")
        return cls(
            frequency=RecurrenceFrequency.parse(payload.get("frequency")),
            interval=interval,
            end_date=coerce_date(end_raw, "recurrence end_date"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "end_date": self.end_date.isoformat(),
        }


@dataclass(frozen=True)
class Reminder:
    """Reminder preferences; only carried through to the notification service."""

    channel: ReminderChannel
    lead_time: str

    def __post_init__(self) -> None:
        if self.lead_time not in REMINDER_LEAD_TIMES:
            raise ValidationError(f"Unsupported reminder lead time: {self.lead_time!r}")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Reminder":
        lead_time = str(payload.get("lead_time", payload.get("time", ""))).lower()
        # Dutch "u" (uur) suffix used by the clinic front end.
        if lead_time.endswith("u"):
            lead_time = f"{lead_time[:-1]}h"
        return cls(
            channel=ReminderChannel.parse(payload.get("channel", payload.get("type"))),
            lead_time=lead_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"channel": self.channel.value, "lead_time": self.lead_time}


@dataclass(frozen=True)
class Appointment:
    id: str
    patient_id: str
    client_id: str
    resource_ids: FrozenSet[str]
    type_id: str
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None
    recurrence: Optional[RecurrencePattern] = None
    reminder: Optional[Reminder] = None
    series_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.resource_ids:
            raise ValidationError("resource_ids must not be empty")
        validate_range(self.start_time, self.end_time)

    @property
    def duration(self):
        return self.end_time - self.start_time

    @property
    def is_cancelled(self) -> bool:
        return self.status is AppointmentStatus.CANCELLED

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Appointment":
        if not payload:
            raise ValidationError("Appointment payload is empty")
        recurrence = payload.get("recurrence")
        reminder = payload.get("reminder")
        optional_times = {
            key: coerce_datetime(payload[key], key)
            for key in ("created_at", "updated_at")
            if payload.get(key)
        }
        return cls(
            id=_require_text(str(payload.get("id", "")), "appointment id"),
            patient_id=_require_text(payload.get("patient_id"), "patient_id"),
            client_id=_require_text(payload.get("client_id"), "client_id"),
            resource_ids=coerce_resource_ids(payload.get("resource_ids", ())),
            type_id=_require_text(payload.get("type_id"), "type_id"),
            start_time=coerce_datetime(payload.get("start_time"), "start_time"),
            end_time=coerce_datetime(payload.get("end_time"), "end_time"),
            status=AppointmentStatus.parse(payload.get("status", AppointmentStatus.SCHEDULED.value)),
            notes=payload.get("notes"),
            recurrence=RecurrencePattern.from_mapping(recurrence) if recurrence else None,
            reminder=Reminder.from_mapping(reminder) if reminder else None,
            series_id=payload.get("series_id"),
            **optional_times,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "client_id": self.client_id,
            "resource_ids": sorted(self.resource_ids),
            "type_id": self.type_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "notes": self.notes,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "reminder": self.reminder.to_dict() if self.reminder else None,
            "series_id": self.series_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class BookingRequest:
    """Input to :meth:`SchedulingService.book_appointment`.

    ``end_time`` wins over ``duration_minutes``; when neither is given the
    appointment type's default duration applies.
    """

    patient_id: str
    client_id: str
    resource_ids: FrozenSet[str]
    type_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    recurrence: Optional[RecurrencePattern] = None
    reminder: Optional[Reminder] = None

    def __post_init__(self) -> None:
        # Stored appointments are always timezone aware.
        object.__setattr__(self, "start_time", coerce_datetime(self.start_time, "start_time"))
        if self.end_time is not None:
            object.__setattr__(self, "end_time", coerce_datetime(self.end_time, "end_time"))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "BookingRequest":
        if not isinstance(payload, Mapping) or not payload:
            raise ValidationError("Booking payload must be a non-empty object")
        end_raw = payload.get("end_time")
        duration = payload.get("duration_minutes")
        recurrence = payload.get("recurrence")
        reminder = payload.get("reminder")
        try:
            duration_minutes = int(duration) if duration is not None else None
        except (TypeError, ValueError) as exc:
            raise ValidationError("duration_minutes must be an integer") from exc
        return cls(
            patient_id=_require_text(payload.get("patient_id"), "patient_id"),
            client_id=_require_text(payload.get("client_id"), "client_id"),
            resource_ids=coerce_resource_ids(payload.get("resource_ids", ())),
            type_id=_require_text(payload.get("type_id"), "type_id"),
            start_time=coerce_datetime(payload.get("start_time"), "start_time"),
            end_time=coerce_datetime(end_raw, "end_time") if end_raw else None,
            duration_minutes=duration_minutes,
            notes=payload.get("notes"),
            recurrence=RecurrencePattern.from_mapping(recurrence) if recurrence else None,
            reminder=Reminder.from_mapping(reminder) if reminder else None,
        )
