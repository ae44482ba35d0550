"""Appointment agent providing scheduling operations."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from connector import InMemoryAppointmentRepository
from connector.rest_client import RestAppointmentRepository
from scheduling import (
    Appointment,
    BookingRequest,
    RecurrencePattern,
    Reminder,
    SchedulingService,
    SchedulingSettings,
)
from scheduling.catalog import load_appointments, load_registry, load_type_catalog
from scheduling.models import coerce_resource_ids

logger = logging.getLogger(__name__)


def build_service(settings: Optional[SchedulingSettings] = None) -> SchedulingService:
    """Assemble a service from the environment.

    Uses the REST repository when ``SCHEDULING_API_URL`` is configured and
    an in-memory repository seeded from the data directory otherwise.
    Empty catalogs disable the corresponding id checks.
    """

    settings = settings or SchedulingSettings.from_env()
    registry = load_registry(settings.data_dir)
    type_catalog = load_type_catalog(settings.data_dir)

    if RestAppointmentRepository.is_configured():
        repository = RestAppointmentRepository()
    else:
        repository = InMemoryAppointmentRepository(load_appointments(settings.data_dir))

    return SchedulingService(
        repository,
        registry=registry if len(registry) else None,
        type_catalog=type_catalog if len(type_catalog) else None,
        settings=settings,
    )


SERVICE = build_service()


def send_notification(recipient_id: str, message: str, reminder: Optional[Reminder] = None) -> None:
    """Stub notification sender for email/SMS reminders.

    The reminder preferences are handed over untouched; delivery and
    timing belong to the messaging integration.
    """

    logger.info(
        "Notification for %s (%s): %s",
        recipient_id,
        reminder.to_dict() if reminder else "no reminder",
        message,
    )


def _confirm(appointment: Appointment) -> None:
    message = (
        f"Appointment confirmed on {', '.join(sorted(appointment.resource_ids))} "
        f"at {appointment.start_time.isoformat()}"
    )
    send_notification(appointment.client_id, message, appointment.reminder)


def book_appointment(
    patient_id: str,
    client_id: str,
    resource_ids: Iterable[str],
    type_id: str,
    start_time: datetime,
    *,
    end_time: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
    reminder: Optional[Reminder] = None,
    service: Optional[SchedulingService] = None,
) -> Dict[str, object]:
    """Book an appointment if every resource is free and notify the client."""

    service = service or SERVICE
    request = BookingRequest(
        patient_id=patient_id,
        client_id=client_id,
        resource_ids=coerce_resource_ids(resource_ids),
        type_id=type_id,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration_minutes,
        notes=notes,
        reminder=reminder,
    )
    appointment = service.book_appointment(request)
    _confirm(appointment)
    return appointment.to_dict()


def book_recurring_appointment(
    patient_id: str,
    client_id: str,
    resource_ids: Iterable[str],
    type_id: str,
    start_time: datetime,
    recurrence: RecurrencePattern,
    *,
    end_time: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
    reminder: Optional[Reminder] = None,
    horizon: Optional[date] = None,
    service: Optional[SchedulingService] = None,
) -> Dict[str, object]:
    """Book a series; occurrences that collide are returned under ``conflicts``."""

    service = service or SERVICE
    request = BookingRequest(
        patient_id=patient_id,
        client_id=client_id,
        resource_ids=coerce_resource_ids(resource_ids),
        type_id=type_id,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration_minutes,
        notes=notes,
        recurrence=recurrence,
        reminder=reminder,
    )
    result = service.book_recurring(request, horizon)
    if result.booked:
        first = result.booked[0]
        send_notification(
            first.client_id,
            f"{len(result.booked)} recurring appointment(s) confirmed starting {first.start_time.isoformat()}",
            first.reminder,
        )
    return result.to_dict()


def reschedule_appointment(
    appointment_id: str,
    start_time: datetime,
    end_time: datetime,
    resource_ids: Optional[Iterable[str]] = None,
    *,
    service: Optional[SchedulingService] = None,
) -> Dict[str, object]:
    service = service or SERVICE
    appointment = service.reschedule_appointment(appointment_id, start_time, end_time, resource_ids)
    _confirm(appointment)
    return appointment.to_dict()


def cancel_appointment(
    appointment_id: str,
    *,
    service: Optional[SchedulingService] = None,
) -> Dict[str, object]:
    """Cancel an existing appointment; the record is kept with status ``cancelled``."""

    service = service or SERVICE
    appointment = service.cancel_appointment(appointment_id)
    send_notification(
        appointment.client_id,
        f"Appointment on {appointment.start_time.isoformat()} was cancelled",
    )
    return appointment.to_dict()


def get_resource_schedule(
    resource_id: str,
    start: datetime,
    end: datetime,
    *,
    service: Optional[SchedulingService] = None,
) -> List[Dict[str, object]]:
    """Retrieve the resource's active appointments in ``[start, end)``."""

    service = service or SERVICE
    return [
        appointment.to_dict()
        for appointment in service.query_by_resource_and_range(resource_id, start, end)
    ]
