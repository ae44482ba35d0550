"""Central orchestration entry point for scheduling maintenance workflows."""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional

if __package__ is None or __package__ == "":  # pragma: no cover - runtime safety for script execution
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from agents.appointments import build_service
from agents.no_show import NoShowAgent
from scheduling import SchedulingSettings

LOG_PATH = Path(__file__).resolve().parent / "task_log.json"
REPORT_PATH = Path(__file__).resolve().parent / "reports" / "no_show_report.json"

logger = logging.getLogger("orchestrator")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


class TaskLogger:
    """Persists orchestration events into a JSON log."""

    def __init__(self, log_path: Path) -> None:
        self._log_path = log_path
        self._lock = threading.Lock()
        self._log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(
        self,
        task_name: str,
        status: str,
        *,
        start_time: Optional[datetime] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, object]] = None,
    ) -> None:
        completed_at = _utc_now()
        started_at = start_time or completed_at
        entry: Dict[str, object] = {
            "task": task_name,
            "status": status,
            "started_at": _format_timestamp(started_at),
            "completed_at": _format_timestamp(completed_at),
        }
        if message:
            entry["message"] = message
        if details is not None:
            entry["details"] = details

        with self._lock:
            history = self.read_history()
            history.append(entry)
            serialized = json.dumps(history, indent=2)
            self._log_path.write_text(f"{serialized}\n", encoding="utf-8")

    def read_history(self) -> List[Dict[str, object]]:
        if not self._log_path.exists():
            return []
        raw_content = self._log_path.read_text(encoding="utf-8").strip()
        if not raw_content:
            return []
        try:
            data = json.loads(raw_content)
        except json.JSONDecodeError as exc:
            raise ValueError(
                f"Task log is corrupted and cannot be parsed: {exc.msg}"
            ) from exc
        if not isinstance(data, list):
            raise ValueError("Task log must contain a JSON list of entries.")
        return data


@dataclass
class IntervalTask:
    """Represents a task that runs every ``interval``."""

    name: str
    interval: timedelta
    action: Callable[[], Optional[Dict[str, object]]]
    next_run: datetime = field(init=False)

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self.next_run = _utc_now()

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_run

    def mark_executed(self, now: Optional[datetime] = None) -> None:
        self.next_run = (now or _utc_now()) + self.interval


class IntervalTaskScheduler:
    """Lightweight scheduler that polls for due tasks."""

    def __init__(self, task_logger: TaskLogger, poll_interval_seconds: int = 30) -> None:
        self._logger = task_logger
        self._poll_interval_seconds = max(1, poll_interval_seconds)
        self._tasks: List[IntervalTask] = []
        self._stop_event = threading.Event()

    def add_task(
        self, name: str, interval: timedelta, action: Callable[[], Optional[Dict[str, object]]]
    ) -> None:
        self._tasks.append(IntervalTask(name=name, interval=interval, action=action))

    def run_pending(self, now: Optional[datetime] = None) -> int:
        """Run every due task once and return how many ran."""

        now = now or _utc_now()
        executed = 0
        for task in self._tasks:
            if not task.is_due(now):
                continue
            try:
                execute_with_logging(task.name, task.action, self._logger)
            except Exception:  # noqa: BLE001 - one failing task must not stop the loop
                logger.exception("Task %s failed", task.name)
            finally:
                task.mark_executed(now)
                executed += 1
        return executed

    def start(self) -> None:
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._handle_stop_signal)
            signal.signal(signal.SIGTERM, self._handle_stop_signal)

        try:
            while not self._stop_event.is_set():
                self.run_pending()
                self._stop_event.wait(self._poll_interval_seconds)
        finally:
            self._stop_event.set()

    def stop(self) -> None:
        self._stop_event.set()

    def _handle_stop_signal(self, signum: int, frame) -> None:  # type: ignore[override]
        self._stop_event.set()


def execute_with_logging(
    task_name: str, action: Callable[[], Optional[Dict[str, object]]], task_logger: TaskLogger
) -> Optional[Dict[str, object]]:
    """Run ``action`` while emitting structured log entries."""

    start_time = _utc_now()
    details: Optional[Dict[str, object]] = None
    status = "success"
    message: Optional[str] = None

    try:
        result = action()
        if isinstance(result, dict):
            details = result
        return result
    except Exception as exc:
        status = "failed"
        message = str(exc)
        raise
    finally:
        task_logger.log(
            task_name,
            status,
            start_time=start_time,
            message=message,
            details=details,
        )


def make_noshow_sweep(agent: NoShowAgent) -> Callable[[], Dict[str, object]]:
    """Wrap ``agent`` so the task log records a compact summary."""

    def run() -> Dict[str, object]:
        report = agent.run()
        return {
            "total_overdue": report["total_overdue"],
            "total_marked": report["total_marked"],
            "total_failures": report["total_failures"],
            "report_path": str(agent.report_path),
        }

    return run


def run_scheduler(task_logger: TaskLogger, settings: SchedulingSettings) -> None:
    agent = NoShowAgent(build_service(settings), report_path=REPORT_PATH)
    scheduler = IntervalTaskScheduler(task_logger)
    scheduler.add_task(
        "noshow_sweep",
        timedelta(seconds=settings.sweep_interval_seconds),
        make_noshow_sweep(agent),
    )
    task_logger.log("scheduler", "started", message="No-show scheduler started.")
    try:
        scheduler.start()
    finally:
        task_logger.log("scheduler", "stopped", message="No-show scheduler stopped.")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Clinic scheduling orchestration controller")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("run_scheduler", "run_noshow_sweep"),
        default="run_scheduler",
        help="Command to execute",
    )
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    settings = SchedulingSettings.from_env()
    task_logger = TaskLogger(LOG_PATH)

    if args.command == "run_noshow_sweep":
        agent = NoShowAgent(build_service(settings), report_path=REPORT_PATH)
        execute_with_logging("noshow_sweep", make_noshow_sweep(agent), task_logger)
    else:
        run_scheduler(task_logger, settings)
    return 0


if __name__ == "__main__":
    sys.exit(main())
