"""Expansion of recurring appointment patterns into concrete occurrences."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from .config import DEFAULT_MAX_OCCURRENCES
from .errors import RecurrenceError
from .models import Appointment, AppointmentStatus, RecurrenceFrequency, RecurrencePattern

__all__ = ["expand", "occurrence_offset"]

logger = logging.getLogger(__name__)


def occurrence_offset(frequency: RecurrenceFrequency, steps: int) -> relativedelta:
    """Offset of the occurrence ``steps`` frequency units after the base."""

    if frequency is RecurrenceFrequency.DAILY:
        return relativedelta(days=steps)
    if frequency is RecurrenceFrequency.WEEKLY:
        return relativedelta(weeks=steps)
    if frequency is RecurrenceFrequency.MONTHLY:
        return relativedelta(months=steps)
    if frequency is RecurrenceFrequency.YEARLY:
        return relativedelta(years=steps)
    raise RecurrenceError(f"Unsupported recurrence frequency: {frequency!r}")


def _validate(base: Appointment, pattern: RecurrencePattern) -> None:
    if not isinstance(pattern.interval, int) or isinstance(pattern.interval, bool) or pattern.interval < 1:
        raise RecurrenceError(f"Recurrence interval must be a positive integer, got {pattern.interval!r}")
    if not isinstance(pattern.end_date, date):
        raise RecurrenceError("Recurrence end_date must be a date")
    if pattern.end_date < base.start_time.date():
        raise RecurrenceError(
            f"Recurrence end_date {pattern.end_date.isoformat()} precedes the first occurrence "
            f"on {base.start_time.date().isoformat()}"
        )


def expand(
    base: Appointment,
    pattern: RecurrencePattern,
    horizon: Optional[date] = None,
    *,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    series_id: Optional[str] = None,
) -> List[Appointment]:
    """Generate the occurrences of ``pattern`` starting at ``base``.

    The base is the first occurrence and keeps its id; later occurrences
    are named ``<series_id>-<index>``. Each following start is
    computed from the base (not from the previous occurrence) so that
    month-end dates clamp per month instead of drifting. Generation stops
    at the first start whose date is after ``pattern.end_date`` or
    ``horizon``, whichever comes first.

    Raises :class:`RecurrenceError` for an invalid pattern or when more
    than ``max_occurrences`` would be produced; no partial list is
    returned in that case.
    """

    _validate(base, pattern)
    last_date = pattern.end_date if horizon is None else min(pattern.end_date, horizon)
    series_id = series_id or base.series_id or base.id
    duration = base.duration
    created_at = datetime.now(timezone.utc)

    occurrences: List[Appointment] = []
    index = 0
    while True:
        start = base.start_time + occurrence_offset(pattern.frequency, index * pattern.interval)
        if start.date() > last_date:
            break
        if len(occurrences) >= max_occurrences:
            raise RecurrenceError(
                f"Recurrence would generate more than {max_occurrences} occurrences"
            )
        occurrences.append(
            replace(
                base,
                id=base.id if index == 0 else f"{series_id}-{index}",
                start_time=start,
                end_time=start + duration,
                status=AppointmentStatus.SCHEDULED,
                recurrence=pattern,
                series_id=series_id,
                created_at=created_at,
                updated_at=created_at,
            )
        )
        index += 1

    logger.debug(
        "Expanded series %s (%s every %d until %s) into %d occurrence(s)",
        series_id,
        pattern.frequency.value,
        pattern.interval,
        last_date.isoformat(),
        len(occurrences),
    )
    return occurrences
