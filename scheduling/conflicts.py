"""Double-booking detection over shared resources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional

from .errors import ValidationError
from .models import Appointment, ensure_utc, validate_range
from .store import AppointmentRepository

__all__ = ["ConflictCandidate", "ConflictDetector", "TimeRange", "overlaps"]

logger = logging.getLogger(__name__)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval test; ranges that only touch do not overlap."""

    return start_a < end_b and start_b < end_a


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        validate_range(self.start, self.end)

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def intersection(self, other: "TimeRange") -> Optional["TimeRange"]:
        if not self.overlaps(other):
            return None
        return TimeRange(max(self.start, other.start), min(self.end, other.end))

    @classmethod
    def of(cls, appointment: Appointment) -> "TimeRange":
        return cls(appointment.start_time, appointment.end_time)


@dataclass(frozen=True)
class ConflictCandidate:
    """A proposed placement; ``exclude_appointment_id`` skips the appointment being moved."""

    resource_ids: FrozenSet[str]
    start_time: datetime
    end_time: datetime
    exclude_appointment_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.resource_ids:
            raise ValidationError("resource_ids must not be empty")
        validate_range(self.start_time, self.end_time)

    @classmethod
    def for_appointment(cls, appointment: Appointment, *, exclude_self: bool = False) -> "ConflictCandidate":
        return cls(
            resource_ids=appointment.resource_ids,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            exclude_appointment_id=appointment.id if exclude_self else None,
        )


class ConflictDetector:
    """Finds non-cancelled appointments that collide with a candidate."""

    def __init__(self, repository: AppointmentRepository) -> None:
        self._repository = repository

    def check_conflicts(self, candidate: ConflictCandidate) -> List[Appointment]:
        """Return colliding appointments ordered by start time; empty means bookable."""

        found: Dict[str, Appointment] = {}
        for resource_id in sorted(candidate.resource_ids):
            existing = self._repository.find_by_resource_and_range(
                resource_id, candidate.start_time, candidate.end_time
            )
            for appointment in self._collisions(candidate, existing):
                found.setdefault(appointment.id, appointment)

        conflicts = sorted(
            found.values(), key=lambda appointment: (ensure_utc(appointment.start_time), appointment.id)
        )
        if conflicts:
            logger.debug(
                "Candidate %s-%s on %s collides with %s",
                candidate.start_time.isoformat(),
                candidate.end_time.isoformat(),
                sorted(candidate.resource_ids),
                [appointment.id for appointment in conflicts],
            )
        return conflicts

    @staticmethod
    def _collisions(candidate: ConflictCandidate, existing: Iterable[Appointment]) -> Iterable[Appointment]:
        start, end = ensure_utc(candidate.start_time), ensure_utc(candidate.end_time)
        for appointment in existing:
            if appointment.is_cancelled:
                continue
            if appointment.id == candidate.exclude_appointment_id:
                continue
            if not candidate.resource_ids & appointment.resource_ids:
                continue
            if overlaps(start, end, ensure_utc(appointment.start_time), ensure_utc(appointment.end_time)):
                yield appointment
