import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock

from orchestrator.main import (
    IntervalTaskScheduler,
    TaskLogger,
    execute_with_logging,
    make_noshow_sweep,
    parse_args,
)


class TaskLoggerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.log_path = Path(self.tmp.name) / "logs" / "task_log.json"
        self.task_logger = TaskLogger(self.log_path)

    def test_entries_are_appended(self) -> None:
        self.task_logger.log("noshow_sweep", "success", details={"total_marked": 2})
        self.task_logger.log("scheduler", "stopped", message="bye")

        history = self.task_logger.read_history()

        self.assertEqual([entry["task"] for entry in history], ["noshow_sweep", "scheduler"])
        self.assertEqual(history[0]["details"], {"total_marked": 2})
        self.assertTrue(history[0]["completed_at"].endswith("Z"))
        self.assertEqual(history[1]["message"], "bye")

    def test_corrupted_log_raises(self) -> None:
        self.log_path.write_text("{broken", encoding="utf-8")

        with self.assertRaises(ValueError):
            self.task_logger.read_history()

    def test_execute_with_logging_records_success(self) -> None:
        result = execute_with_logging("job", lambda: {"count": 1}, self.task_logger)

        self.assertEqual(result, {"count": 1})
        entry = self.task_logger.read_history()[-1]
        self.assertEqual(entry["status"], "success")
        self.assertEqual(entry["details"], {"count": 1})

    def test_execute_with_logging_records_failure_and_reraises(self) -> None:
        def boom():
            raise RuntimeError("records service down")

        with self.assertRaises(RuntimeError):
            execute_with_logging("job", boom, self.task_logger)

        entry = self.task_logger.read_history()[-1]
        self.assertEqual(entry["status"], "failed")
        self.assertEqual(entry["message"], "records service down")


class IntervalTaskSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.task_logger = TaskLogger(Path(self.tmp.name) / "task_log.json")
        self.scheduler = IntervalTaskScheduler(self.task_logger)

    def test_tasks_run_once_per_interval(self) -> None:
        action = MagicMock(return_value=None)
        self.scheduler.add_task("sweep", timedelta(minutes=5), action)
        now = datetime.now(timezone.utc) + timedelta(seconds=1)

        self.assertEqual(self.scheduler.run_pending(now), 1)
        self.assertEqual(self.scheduler.run_pending(now + timedelta(minutes=1)), 0)
        self.assertEqual(self.scheduler.run_pending(now + timedelta(minutes=5)), 1)
        self.assertEqual(action.call_count, 2)

    def test_failing_task_does_not_stop_others(self) -> None:
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock(return_value={"ok": True})
        self.scheduler.add_task("failing", timedelta(minutes=5), failing)
        self.scheduler.add_task("healthy", timedelta(minutes=5), healthy)

        with self.assertLogs("orchestrator", level="ERROR"):
            executed = self.scheduler.run_pending(datetime.now(timezone.utc) + timedelta(seconds=1))

        self.assertEqual(executed, 2)
        healthy.assert_called_once()
        statuses = [entry["status"] for entry in self.task_logger.read_history()]
        self.assertEqual(statuses, ["failed", "success"])

    def test_interval_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            self.scheduler.add_task("never", timedelta(0), MagicMock())


class SweepWrapperTests(unittest.TestCase):
    def test_make_noshow_sweep_summarises_report(self) -> None:
        agent = MagicMock()
        agent.report_path = Path("/tmp/no_show_report.json")
        agent.run.return_value = {
            "total_overdue": 3,
            "total_marked": 2,
            "total_failures": 1,
            "no_shows": [],
        }

        summary = make_noshow_sweep(agent)()

        self.assertEqual(
            summary,
            {
                "total_overdue": 3,
                "total_marked": 2,
                "total_failures": 1,
                "report_path": "/tmp/no_show_report.json",
            },
        )


class ParseArgsTests(unittest.TestCase):
    def test_defaults_to_scheduler(self) -> None:
        args = parse_args([])
        self.assertEqual(args.command, "run_scheduler")
        self.assertEqual(args.log_level, "INFO")

    def test_single_sweep_command(self) -> None:
        args = parse_args(["run_noshow_sweep", "--log-level", "debug"])
        self.assertEqual(args.command, "run_noshow_sweep")
        self.assertEqual(args.log_level, "debug")

    def test_unknown_command_exits(self) -> None:
        with self.assertRaises(SystemExit):
            parse_args(["run_billing"])


if __name__ == "__main__":
    unittest.main()
