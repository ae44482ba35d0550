"""Load catalogs and seed appointments from JSON files in the data directory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from .config import DEFAULT_DATA_DIR
from .models import Appointment, AppointmentType, Resource
from .registry import AppointmentTypeCatalog, ResourceRegistry

__all__ = ["load_appointments", "load_registry", "load_type_catalog"]

logger = logging.getLogger(__name__)

RESOURCES_FILE = "resources.json"
APPOINTMENT_TYPES_FILE = "appointment_types.json"
APPOINTMENTS_FILE = "appointments.json"

_Parsed = TypeVar("_Parsed")


def _load_records(path: Path, parse: Callable[[dict], _Parsed]) -> List[_Parsed]:
    if not path.exists():
        logger.info("Data file %s not found; starting empty", path)
        return []

    raw_content = path.read_text(encoding="utf-8").strip()
    if not raw_content:
        return []
    try:
        raw_data = json.loads(raw_content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON data in {path}: {exc.msg}") from exc

    if not isinstance(raw_data, list):
        raise ValueError(f"{path} must contain a JSON list of records.")

    records: List[_Parsed] = []
    for entry in raw_data:
        if not isinstance(entry, dict):
            raise ValueError(f"Each entry in {path} must be a JSON object.")
        records.append(parse(entry))
    return records


def load_registry(data_dir: Optional[Path] = None) -> ResourceRegistry:
    path = (data_dir or DEFAULT_DATA_DIR) / RESOURCES_FILE
    return ResourceRegistry(_load_records(path, Resource.from_mapping))


def load_type_catalog(data_dir: Optional[Path] = None) -> AppointmentTypeCatalog:
    path = (data_dir or DEFAULT_DATA_DIR) / APPOINTMENT_TYPES_FILE
    return AppointmentTypeCatalog(_load_records(path, AppointmentType.from_mapping))


def load_appointments(data_dir: Optional[Path] = None) -> List[Appointment]:
    """Load previously stored appointments, e.g. to seed the in-memory repository."""

    path = (data_dir or DEFAULT_DATA_DIR) / APPOINTMENTS_FILE
    return _load_records(path, Appointment.from_mapping)
