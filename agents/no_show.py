"""No-show agent marking patients who never checked in."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from scheduling import Appointment, AppointmentStatus, SchedulingError, SchedulingService

logger = logging.getLogger(__name__)


@dataclass
class NoShowProcessingResult:
    appointment_id: str
    patient_id: str
    success: bool
    message: str
    scheduled_start: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_report_entry(self) -> Dict[str, Any]:
        return {
            "appointment_id": self.appointment_id,
            "patient_id": self.patient_id,
            "success": self.success,
            "message": self.message,
            "scheduled_start": self.scheduled_start,
            "details": self.details,
        }


class NoShowAgent:
    """Coordinates the no-show sweep and writes a JSON report of each run."""

    def __init__(
        self,
        service: SchedulingService,
        *,
        report_path: Path | str = "no_show_report.json",
    ) -> None:
        self._service = service
        self._report_path = Path(report_path)

    @property
    def report_path(self) -> Path:
        return self._report_path

    def run(self, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        """Mark overdue appointments as no-show and return the report payload."""

        as_of = as_of or datetime.now(timezone.utc)
        candidates = self._fetch_candidates(as_of)
        results: List[NoShowProcessingResult] = []

        for appointment in candidates:
            logger.debug("Processing no-show for appointment %s", appointment.id)
            try:
                updated = self._service.transition_status(
                    appointment.id, AppointmentStatus.NO_SHOW, now=as_of
                )
                result = NoShowProcessingResult(
                    appointment_id=updated.id,
                    patient_id=updated.patient_id,
                    success=True,
                    message="Marked as no-show",
                    scheduled_start=updated.start_time.isoformat(),
                    details={"resource_ids": sorted(updated.resource_ids)},
                )
                logger.info("Appointment %s marked as no-show", appointment.id)
            except SchedulingError as exc:
                logger.warning("Failed to mark appointment %s as no-show: %s", appointment.id, exc)
                result = NoShowProcessingResult(
                    appointment_id=appointment.id,
                    patient_id=appointment.patient_id,
                    success=False,
                    message=str(exc),
                    scheduled_start=appointment.start_time.isoformat(),
                )
            results.append(result)

        return self._write_report(as_of, candidates, results)

    def _fetch_candidates(self, as_of: datetime) -> List[Appointment]:
        scheduled = self._service.repository.list_by_status(AppointmentStatus.SCHEDULED)
        return self._service.lifecycle.find_no_show_candidates(scheduled, as_of)

    def _write_report(
        self,
        as_of: datetime,
        candidates: Iterable[Appointment],
        results: Iterable[NoShowProcessingResult],
    ) -> Dict[str, Any]:
        report_payload: Dict[str, Any] = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "as_of": as_of.isoformat(),
            "grace_minutes": int(self._service.lifecycle.no_show_grace.total_seconds() // 60),
            "total_overdue": len(list(candidates)),
            "no_shows": [result.to_report_entry() for result in results],
        }
        report_payload["total_marked"] = sum(1 for item in report_payload["no_shows"] if item["success"])
        report_payload["total_failures"] = sum(1 for item in report_payload["no_shows"] if not item["success"])

        self._report_path.parent.mkdir(parents=True, exist_ok=True)
        with self._report_path.open("w", encoding="utf-8") as handle:
            json.dump(report_payload, handle, indent=2, sort_keys=True)
        logger.info("No-show report written to %s", self._report_path)
        return report_payload


__all__ = ["NoShowAgent", "NoShowProcessingResult"]
