"""Repository interface the scheduling engine persists appointments through."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from .models import Appointment, AppointmentStatus

__all__ = ["AppointmentRepository"]


class AppointmentRepository(Protocol):
    """Minimal persistence contract required by :class:`SchedulingService`.

    Implementations live in :mod:`connector`. ``find_by_resource_and_range``
    returns every appointment referencing ``resource_id`` whose range
    intersects ``[start, end)``, cancelled ones included, ordered by
    ``(start_time, id)``.
    """

    def find_by_resource_and_range(
        self, resource_id: str, start: datetime, end: datetime
    ) -> List[Appointment]:
        """Return appointments on ``resource_id`` intersecting ``[start, end)``."""

    def insert(self, appointment: Appointment) -> Appointment:
        """Persist a new appointment; its id must not exist yet."""

    def update(self, appointment: Appointment) -> Appointment:
        """Replace a stored appointment with the same id."""

    def get(self, appointment_id: str) -> Optional[Appointment]:
        """Return the appointment or ``None`` when the id is unknown."""

    def list_by_status(self, status: AppointmentStatus) -> List[Appointment]:
        """Return appointments currently in ``status`` ordered by start time."""
