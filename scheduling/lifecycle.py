"""Appointment status state machine.

::

    scheduled -> checked_in -> in_progress -> completed
    scheduled | checked_in -> cancelled
    scheduled -> no_show   (only once the no-show grace period has elapsed)

``completed``, ``cancelled`` and ``no_show`` are terminal.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from .config import DEFAULT_NO_SHOW_GRACE_MINUTES
from .errors import InvalidTransitionError
from .models import Appointment, AppointmentStatus, ensure_utc

__all__ = ["StatusLifecycle", "TERMINAL_STATUSES", "VALID_TRANSITIONS"]

logger = logging.getLogger(__name__)

S = AppointmentStatus

VALID_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.SCHEDULED: frozenset({S.CHECKED_IN, S.CANCELLED, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in VALID_TRANSITIONS.items() if not targets)


def _now_like(reference: datetime) -> datetime:
    # Compare naive timestamps with naive "now" and aware with aware.
    if reference.tzinfo is None:
        return datetime.now()
    return datetime.now(timezone.utc)


def _align(now: Optional[datetime], reference: datetime) -> datetime:
    """``now`` (default: the current time) in the naive or aware form of ``reference``."""

    if now is None:
        return _now_like(reference)
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class StatusLifecycle:
    """Validates and applies status transitions."""

    def __init__(self, no_show_grace: timedelta = timedelta(minutes=DEFAULT_NO_SHOW_GRACE_MINUTES)) -> None:
        if no_show_grace < timedelta(0):
            raise ValueError("no_show_grace must not be negative")
        self.no_show_grace = no_show_grace

    @staticmethod
    def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
        return target in VALID_TRANSITIONS[current]

    def no_show_deadline(self, appointment: Appointment) -> datetime:
        return appointment.start_time + self.no_show_grace

    def apply_transition(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
        *,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """Return a copy of ``appointment`` in ``target`` status or raise."""

        target = AppointmentStatus.parse(target)
        current = appointment.status
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(current, target, "appointment is in a terminal state")
        if not self.can_transition(current, target):
            raise InvalidTransitionError(current, target)

        now = _align(now, appointment.start_time)
        if target is S.NO_SHOW:
            deadline = self.no_show_deadline(appointment)
            if now < deadline:
                raise InvalidTransitionError(
                    current, target, f"check-in grace period runs until {deadline.isoformat()}"
                )

        logger.debug("Appointment %s: %s -> %s", appointment.id, current.value, target.value)
        return replace(appointment, status=target, updated_at=datetime.now(timezone.utc))

    def find_no_show_candidates(
        self, appointments: Iterable[Appointment], now: Optional[datetime] = None
    ) -> List[Appointment]:
        """Scheduled appointments whose check-in deadline has passed."""

        candidates: List[Appointment] = []
        for appointment in appointments:
            if appointment.status is not S.SCHEDULED:
                continue
            reference = _align(now, appointment.start_time)
            if reference >= self.no_show_deadline(appointment):
                candidates.append(appointment)
        return sorted(candidates, key=lambda appointment: (ensure_utc(appointment.start_time), appointment.id))
