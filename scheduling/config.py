"""Environment driven settings for the scheduling engine.

Every value can be overridden by the hosting application through the
environment variables listed below, or by constructing
:class:`SchedulingSettings` directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

__all__ = ["SchedulingSettings", "DEFAULT_DATA_DIR"]


DEFAULT_NO_SHOW_GRACE_MINUTES = 15
DEFAULT_MAX_OCCURRENCES = 500
DEFAULT_GRID_FIRST_HOUR = 8
DEFAULT_GRID_LAST_HOUR = 20
DEFAULT_SWEEP_INTERVAL_SECONDS = 300
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def _int_from_env(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw_value = environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw_value!r}") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class SchedulingSettings:
    no_show_grace_minutes: int = DEFAULT_NO_SHOW_GRACE_MINUTES
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    grid_first_hour: int = DEFAULT_GRID_FIRST_HOUR
    grid_last_hour: int = DEFAULT_GRID_LAST_HOUR
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    data_dir: Path = DEFAULT_DATA_DIR

    def __post_init__(self) -> None:
        if not 0 <= self.grid_first_hour < self.grid_last_hour <= 24:
            raise ValueError("grid hours must satisfy 0 <= first < last <= 24")
        if self.max_occurrences < 1:
            raise ValueError("max_occurrences must be at least 1")

    @property
    def no_show_grace(self) -> timedelta:
        return timedelta(minutes=self.no_show_grace_minutes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SchedulingSettings":
        """Build settings from ``SCHEDULING_*`` environment variables."""

        environ = os.environ if environ is None else environ
        data_dir = environ.get("SCHEDULING_DATA_DIR")
        return cls(
            no_show_grace_minutes=_int_from_env(
                environ, "SCHEDULING_NO_SHOW_GRACE_MINUTES", DEFAULT_NO_SHOW_GRACE_MINUTES
            ),
            max_occurrences=_int_from_env(
                environ, "SCHEDULING_MAX_OCCURRENCES", DEFAULT_MAX_OCCURRENCES, minimum=1
            ),
            grid_first_hour=_int_from_env(environ, "SCHEDULING_GRID_FIRST_HOUR", DEFAULT_GRID_FIRST_HOUR),
            grid_last_hour=_int_from_env(environ, "SCHEDULING_GRID_LAST_HOUR", DEFAULT_GRID_LAST_HOUR),
            sweep_interval_seconds=_int_from_env(
                environ, "SCHEDULING_SWEEP_INTERVAL_SECONDS", DEFAULT_SWEEP_INTERVAL_SECONDS, minimum=1
            ),
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
        )
