"""Booking operations exposed to the rest of the clinic platform.

:class:`SchedulingService` wires the registry, the repository, the
conflict detector, the recurrence expander, the status lifecycle and the
grid layout together. Every mutating call is all-or-nothing for a single
appointment: conflicts are checked and the write happens while the locks
of every touched resource are held.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional

from .config import SchedulingSettings
from .conflicts import ConflictCandidate, ConflictDetector
from .errors import AppointmentNotFoundError, ConflictError, InvalidTransitionError, ValidationError
from .layout import CellLayout, layout_in_cell
from .lifecycle import TERMINAL_STATUSES, StatusLifecycle
from .locks import ResourceLockManager
from .models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    RecurrencePattern,
    coerce_datetime,
    coerce_resource_ids,
    ensure_utc,
    validate_range,
)
from .recurrence import expand
from .registry import AppointmentTypeCatalog, ResourceRegistry
from .store import AppointmentRepository

__all__ = ["OccurrenceConflict", "RecurringBookingResult", "SchedulingService"]

logger = logging.getLogger(__name__)

_MAX_LOCK_ATTEMPTS = 5


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class OccurrenceConflict:
    """An occurrence that was generated but not booked because its resources were taken."""

    occurrence: Appointment
    conflicts: List[Appointment]

    def to_dict(self) -> Dict[str, object]:
        return {
            "occurrence": self.occurrence.to_dict(),
            "conflicts": [appointment.to_dict() for appointment in self.conflicts],
        }


@dataclass
class RecurringBookingResult:
    series_id: str
    booked: List[Appointment] = field(default_factory=list)
    conflicts: List[OccurrenceConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def to_dict(self) -> Dict[str, object]:
        return {
            "series_id": self.series_id,
            "booked": [appointment.to_dict() for appointment in self.booked],
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
        }


class SchedulingService:
    """Entry point for booking, rescheduling, cancelling and status changes."""

    def __init__(
        self,
        repository: AppointmentRepository,
        *,
        registry: Optional[ResourceRegistry] = None,
        type_catalog: Optional[AppointmentTypeCatalog] = None,
        settings: Optional[SchedulingSettings] = None,
        lifecycle: Optional[StatusLifecycle] = None,
        locks: Optional[ResourceLockManager] = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.settings = settings or SchedulingSettings()
        self.repository = repository
        self.registry = registry
        self.type_catalog = type_catalog
        self.detector = ConflictDetector(repository)
        self.lifecycle = lifecycle or StatusLifecycle(self.settings.no_show_grace)
        self._locks = locks or ResourceLockManager()
        self._id_factory = id_factory

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repository.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(f"Appointment '{appointment_id}' does not exist")
        return appointment

    def check_conflicts(self, candidate: ConflictCandidate) -> List[Appointment]:
        return self.detector.check_conflicts(candidate)

    def query_by_resource_and_range(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        *,
        include_cancelled: bool = False,
    ) -> List[Appointment]:
        start, end = coerce_datetime(start, "start"), coerce_datetime(end, "end")
        validate_range(start, end)
        appointments = self.repository.find_by_resource_and_range(resource_id, start, end)
        if not include_cancelled:
            appointments = [appointment for appointment in appointments if not appointment.is_cancelled]
        return sorted(appointments, key=lambda appointment: (ensure_utc(appointment.start_time), appointment.id))

    @staticmethod
    def layout_in_cell(
        appointment: Appointment, cell_start: datetime, cell_end: datetime
    ) -> Optional[CellLayout]:
        return layout_in_cell(appointment, cell_start, cell_end)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    def book_appointment(self, request: BookingRequest) -> Appointment:
        """Book a single appointment or raise ``ConflictError`` / ``ValidationError``."""

        if request.recurrence is not None:
            raise ValidationError("Recurring requests must be booked with book_recurring")
        appointment = self._build_appointment(request, self._id_factory())
        with self._locks.hold(appointment.resource_ids):
            self._ensure_free(ConflictCandidate.for_appointment(appointment))
            stored = self.repository.insert(appointment)

        logger.info(
            "Booked appointment %s for patient %s on %s at %s",
            stored.id,
            stored.patient_id,
            sorted(stored.resource_ids),
            stored.start_time.isoformat(),
        )
        return stored

    def expand_recurrence(
        self,
        base: Appointment,
        pattern: RecurrencePattern,
        horizon: Optional[date] = None,
    ) -> List[Appointment]:
        return expand(base, pattern, horizon, max_occurrences=self.settings.max_occurrences)

    def flag_conflicts(self, occurrences: Iterable[Appointment]) -> List[OccurrenceConflict]:
        """Report which of ``occurrences`` would collide with stored appointments."""

        flagged: List[OccurrenceConflict] = []
        for occurrence in occurrences:
            # Occurrence 0 keeps the base id, so a stored base never flags itself.
            candidate = ConflictCandidate.for_appointment(occurrence, exclude_self=True)
            conflicts = self.detector.check_conflicts(candidate)
            if conflicts:
                flagged.append(OccurrenceConflict(occurrence, conflicts))
        return flagged

    def book_recurring(self, request: BookingRequest, horizon: Optional[date] = None) -> RecurringBookingResult:
        """Book every occurrence of ``request.recurrence`` independently.

        Occurrences whose resources are already taken are reported in
        ``conflicts`` and not written; the others stay booked.
        """

        if request.recurrence is None:
            raise ValidationError("book_recurring requires a recurrence pattern")

        series_id = self._id_factory()
        base = self._build_appointment(request, series_id)
        occurrences = self.expand_recurrence(base, request.recurrence, horizon)

        result = RecurringBookingResult(series_id=series_id)
        for occurrence in occurrences:
            with self._locks.hold(occurrence.resource_ids):
                conflicts = self.detector.check_conflicts(ConflictCandidate.for_appointment(occurrence))
                if conflicts:
                    result.conflicts.append(OccurrenceConflict(occurrence, conflicts))
                    continue
                result.booked.append(self.repository.insert(occurrence))

        if result.conflicts:
            logger.warning(
                "Series %s: %d occurrence(s) not booked due to conflicts",
                series_id,
                len(result.conflicts),
            )
        logger.info("Booked %d occurrence(s) for series %s", len(result.booked), series_id)
        return result

    def reschedule_appointment(
        self,
        appointment_id: str,
        start_time: datetime,
        end_time: datetime,
        resource_ids: Optional[Iterable[str]] = None,
    ) -> Appointment:
        start_time = coerce_datetime(start_time, "start_time")
        end_time = coerce_datetime(end_time, "end_time")
        validate_range(start_time, end_time)
        new_resources = coerce_resource_ids(resource_ids) if resource_ids is not None else None
        if new_resources is not None and self.registry is not None:
            self.registry.require_all(new_resources)

        with self._hold_appointment(appointment_id, new_resources or frozenset()) as current:
            if current.status in TERMINAL_STATUSES:
                raise ValidationError(
                    f"Appointment '{appointment_id}' is {current.status.value} and cannot be rescheduled"
                )
            moved = replace(
                current,
                start_time=start_time,
                end_time=end_time,
                resource_ids=new_resources or current.resource_ids,
                updated_at=datetime.now(timezone.utc),
            )
            self._ensure_free(ConflictCandidate.for_appointment(moved, exclude_self=True))
            stored = self.repository.update(moved)

        logger.info(
            "Rescheduled appointment %s to %s-%s on %s",
            stored.id,
            stored.start_time.isoformat(),
            stored.end_time.isoformat(),
            sorted(stored.resource_ids),
        )
        return stored

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------
    def transition_status(
        self,
        appointment_id: str,
        target: AppointmentStatus,
        *,
        now: Optional[datetime] = None,
    ) -> Appointment:
        with self._hold_appointment(appointment_id) as current:
            updated = self.lifecycle.apply_transition(current, target, now=now)
            stored = self.repository.update(updated)

        logger.info("Appointment %s is now %s", stored.id, stored.status.value)
        return stored

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        return self.transition_status(appointment_id, AppointmentStatus.CANCELLED)

    def mark_no_shows(self, now: Optional[datetime] = None) -> List[Appointment]:
        """Move every scheduled appointment past its check-in deadline to no_show."""

        scheduled = self.repository.list_by_status(AppointmentStatus.SCHEDULED)
        marked: List[Appointment] = []
        for candidate in self.lifecycle.find_no_show_candidates(scheduled, now):
            try:
                marked.append(self.transition_status(candidate.id, AppointmentStatus.NO_SHOW, now=now))
            except InvalidTransitionError as exc:
                # Checked in or cancelled since the candidates were read.
                logger.warning("Skipping no-show for %s: %s", candidate.id, exc)
        if marked:
            logger.info("Marked %d appointment(s) as no-show", len(marked))
        return marked

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _build_appointment(self, request: BookingRequest, appointment_id: str) -> Appointment:
        resource_ids = coerce_resource_ids(request.resource_ids)
        if self.registry is not None:
            self.registry.require_all(resource_ids)
        if self.type_catalog is not None:
            self.type_catalog.get(request.type_id)

        return Appointment(
            id=appointment_id,
            patient_id=request.patient_id,
            client_id=request.client_id,
            resource_ids=resource_ids,
            type_id=request.type_id,
            start_time=request.start_time,
            end_time=self._resolve_end_time(request),
            notes=request.notes,
            recurrence=request.recurrence,
            reminder=request.reminder,
        )

    def _resolve_end_time(self, request: BookingRequest) -> datetime:
        if request.end_time is not None:
            return request.end_time
        if request.duration_minutes is not None:
            if request.duration_minutes <= 0:
                raise ValidationError("duration_minutes must be positive")
            return request.start_time + timedelta(minutes=request.duration_minutes)
        if self.type_catalog is None:
            raise ValidationError("end_time or duration_minutes is required")
        appointment_type = self.type_catalog.get(request.type_id)
        return request.start_time + timedelta(minutes=appointment_type.default_duration_minutes)

    def _ensure_free(self, candidate: ConflictCandidate) -> None:
        conflicts = self.detector.check_conflicts(candidate)
        if conflicts:
            logger.warning(
                "Rejected booking on %s at %s: conflicts with %s",
                sorted(candidate.resource_ids),
                candidate.start_time.isoformat(),
                [appointment.id for appointment in conflicts],
            )
            raise ConflictError(conflicts)

    @contextmanager
    def _hold_appointment(
        self, appointment_id: str, extra_resources: FrozenSet[str] = frozenset()
    ) -> Iterator[Appointment]:
        """Lock the appointment's resources (plus ``extra_resources``) and yield a fresh copy."""

        for _ in range(_MAX_LOCK_ATTEMPTS):
            snapshot = self.get_appointment(appointment_id)
            wanted = snapshot.resource_ids | extra_resources
            with self._locks.hold(wanted):
                current = self.get_appointment(appointment_id)
                # Resources may have moved between the read and the lock.
                if current.resource_ids <= wanted:
                    yield current
                    return
        raise ConflictError([], f"Appointment '{appointment_id}' kept changing while acquiring locks")
