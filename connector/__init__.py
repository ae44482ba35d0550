"""Persistence connectors for the scheduling engine."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from scheduling.errors import AppointmentNotFoundError, ValidationError
from scheduling.models import Appointment, AppointmentStatus, ensure_utc


class InMemoryAppointmentRepository:
    """In-memory appointment store satisfying ``AppointmentRepository``."""

    def __init__(self, appointments: Optional[Iterable[Appointment]] = None) -> None:
        self._appointments: Dict[str, Appointment] = {}
        self._by_resource: Dict[str, set[str]] = {}
        self._lock = threading.RLock()
        for appointment in appointments or ():
            self.insert(appointment)

    def find_by_resource_and_range(
        self, resource_id: str, start: datetime, end: datetime
    ) -> List[Appointment]:
        start, end = ensure_utc(start), ensure_utc(end)
        with self._lock:
            records = [
                self._appointments[appointment_id]
                for appointment_id in self._by_resource.get(resource_id, ())
            ]
        matches = [
            record
            for record in records
            if ensure_utc(record.start_time) < end and start < ensure_utc(record.end_time)
        ]
        return sorted(matches, key=lambda record: (ensure_utc(record.start_time), record.id))

    def insert(self, appointment: Appointment) -> Appointment:
        with self._lock:
            if appointment.id in self._appointments:
                raise ValidationError(f"Appointment '{appointment.id}' already exists")
            self._store(appointment)
        return appointment

    def update(self, appointment: Appointment) -> Appointment:
        with self._lock:
            previous = self._appointments.get(appointment.id)
            if previous is None:
                raise AppointmentNotFoundError(f"Appointment '{appointment.id}' does not exist")
            for resource_id in previous.resource_ids:
                self._by_resource[resource_id].discard(appointment.id)
            self._store(appointment)
        return appointment

    def get(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            return self._appointments.get(appointment_id)

    def list_by_status(self, status: AppointmentStatus) -> List[Appointment]:
        with self._lock:
            records = [record for record in self._appointments.values() if record.status is status]
        return sorted(records, key=lambda record: (ensure_utc(record.start_time), record.id))

    def all(self) -> List[Appointment]:
        with self._lock:
            records = list(self._appointments.values())
        return sorted(records, key=lambda record: (ensure_utc(record.start_time), record.id))

    def _store(self, appointment: Appointment) -> None:
        self._appointments[appointment.id] = appointment
        for resource_id in appointment.resource_ids:
            self._by_resource.setdefault(resource_id, set()).add(appointment.id)


__all__ = ["InMemoryAppointmentRepository"]
