"""Placement of appointments inside fixed-size calendar grid cells.

The grid is purely visual; nothing here knows about resources,
conflicts or statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from .config import DEFAULT_GRID_FIRST_HOUR, DEFAULT_GRID_LAST_HOUR
from .errors import ValidationError
from .models import Appointment

__all__ = ["CellLayout", "hour_cells", "layout_day", "layout_in_cell", "layout_range"]

Cell = Tuple[datetime, datetime]


@dataclass(frozen=True)
class CellLayout:
    """Offset and height of an appointment as fractions of the cell height."""

    top_fraction: float
    height_fraction: float

    def to_dict(self) -> dict:
        return {"top": self.top_fraction, "height": self.height_fraction}


def layout_range(
    start: datetime, end: datetime, cell_start: datetime, cell_end: datetime
) -> Optional[CellLayout]:
    if cell_end <= cell_start:
        raise ValidationError("cell_end must be after cell_start")

    overlap_start = max(start, cell_start)
    overlap_end = min(end, cell_end)
    if overlap_start >= overlap_end:
        return None

    cell_duration = (cell_end - cell_start).total_seconds()
    return CellLayout(
        top_fraction=(overlap_start - cell_start).total_seconds() / cell_duration,
        height_fraction=(overlap_end - overlap_start).total_seconds() / cell_duration,
    )


def layout_in_cell(
    appointment: Appointment, cell_start: datetime, cell_end: datetime
) -> Optional[CellLayout]:
    """Clip ``appointment`` to ``[cell_start, cell_end)``; ``None`` when it is not visible there."""

    return layout_range(appointment.start_time, appointment.end_time, cell_start, cell_end)


def hour_cells(
    day: date,
    first_hour: int = DEFAULT_GRID_FIRST_HOUR,
    last_hour: int = DEFAULT_GRID_LAST_HOUR,
    *,
    tzinfo=None,
) -> List[Cell]:
    """One-hour cells from ``first_hour`` up to (excluding) ``last_hour``."""

    if not 0 <= first_hour < last_hour <= 24:
        raise ValidationError("grid hours must satisfy 0 <= first_hour < last_hour <= 24")
    midnight = datetime.combine(day, time.min, tzinfo=tzinfo)
    return [
        (midnight + timedelta(hours=hour), midnight + timedelta(hours=hour + 1))
        for hour in range(first_hour, last_hour)
    ]


def layout_day(appointment: Appointment, cells: List[Cell]) -> List[Tuple[datetime, CellLayout]]:
    placements: List[Tuple[datetime, CellLayout]] = []
    for cell_start, cell_end in cells:
        placement = layout_in_cell(appointment, cell_start, cell_end)
        if placement is not None:
            placements.append((cell_start, placement))
    return placements
