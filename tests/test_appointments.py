import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from agents import appointments
from connector import InMemoryAppointmentRepository
from scheduling import (
    ConflictError,
    RecurrenceFrequency,
    RecurrencePattern,
    Reminder,
    ReminderChannel,
    SchedulingService,
    SchedulingSettings,
)
from scheduling.config import DEFAULT_DATA_DIR


class AppointmentAgentTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = InMemoryAppointmentRepository()
        self.service = SchedulingService(self.repository)

        self.service_patcher = patch("agents.appointments.SERVICE", self.service)
        self.notify_patcher = patch("agents.appointments.send_notification")

        self.service_patcher.start()
        self.mock_notify = self.notify_patcher.start()

        self.start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=1)

    def tearDown(self) -> None:
        self.notify_patcher.stop()
        self.service_patcher.stop()

    def test_book_appointment_success(self) -> None:
        reminder = Reminder(ReminderChannel.SMS, "24h")

        appointment = appointments.book_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start,
            duration_minutes=30, reminder=reminder,
        )

        self.assertEqual(appointment["patient_id"], "patient-1")
        self.assertEqual(appointment["resource_ids"], ["provider-1"])
        self.assertEqual(appointment["start_time"], self.start.isoformat())
        self.assertEqual(appointment["status"], "scheduled")
        self.mock_notify.assert_called_once()
        recipient, _message, passed_reminder = self.mock_notify.call_args.args
        self.assertEqual(recipient, "client-1")
        self.assertIs(passed_reminder, reminder)

    def test_book_appointment_rejects_unavailable_slot(self) -> None:
        appointments.book_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start, duration_minutes=30
        )
        self.mock_notify.reset_mock()

        with self.assertRaises(ConflictError):
            appointments.book_appointment(
                "patient-2", "client-2", ["provider-1"], "1",
                self.start + timedelta(minutes=15), duration_minutes=30,
            )

        self.mock_notify.assert_not_called()

    def test_cancel_appointment(self) -> None:
        appointment = appointments.book_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start, duration_minutes=30
        )

        cancelled = appointments.cancel_appointment(appointment["id"])

        self.assertEqual(cancelled["status"], "cancelled")
        schedule = appointments.get_resource_schedule(
            "provider-1", self.start - timedelta(hours=1), self.start + timedelta(hours=1)
        )
        self.assertEqual(schedule, [])

    def test_cancel_nonexistent_appointment_raises_error(self) -> None:
        with self.assertRaises(LookupError):
            appointments.cancel_appointment("999")

    def test_reschedule_appointment(self) -> None:
        appointment = appointments.book_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start, duration_minutes=30
        )
        new_start = self.start + timedelta(hours=2)

        moved = appointments.reschedule_appointment(
            appointment["id"], new_start, new_start + timedelta(minutes=30)
        )

        self.assertEqual(moved["start_time"], new_start.isoformat())
        self.assertEqual(self.mock_notify.call_count, 2)

    def test_get_resource_schedule_sorted(self) -> None:
        early = self.start
        late = early + timedelta(hours=2)

        appointments.book_appointment("patient-1", "client-1", ["provider-1"], "1", late, duration_minutes=30)
        appointments.book_appointment("patient-2", "client-2", ["provider-1"], "1", early, duration_minutes=30)

        schedule = appointments.get_resource_schedule("provider-1", early, late + timedelta(hours=1))
        self.assertEqual(len(schedule), 2)
        self.assertEqual(schedule[0]["start_time"], early.isoformat())
        self.assertEqual(schedule[1]["start_time"], late.isoformat())

    def test_book_recurring_appointment(self) -> None:
        pattern = RecurrencePattern(
            RecurrenceFrequency.WEEKLY, 1, (self.start + timedelta(weeks=2)).date()
        )

        result = appointments.book_recurring_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start, pattern, duration_minutes=30
        )

        self.assertEqual(len(result["booked"]), 3)
        self.assertEqual(result["conflicts"], [])
        self.mock_notify.assert_called_once()

    def test_explicit_service_overrides_default(self) -> None:
        other = SchedulingService(InMemoryAppointmentRepository())

        appointments.book_appointment(
            "patient-1", "client-1", ["provider-1"], "1", self.start,
            duration_minutes=30, service=other,
        )

        self.assertEqual(self.repository.all(), [])
        self.assertEqual(len(other.repository.all()), 1)


class BuildServiceTests(unittest.TestCase):
    def test_build_service_uses_catalogs_from_data_dir(self) -> None:
        service = appointments.build_service(SchedulingSettings(data_dir=DEFAULT_DATA_DIR))

        self.assertIsNotNone(service.registry)
        self.assertIn("1", service.registry)
        self.assertIsInstance(service.repository, InMemoryAppointmentRepository)

    def test_build_service_without_data_disables_catalog_checks(self) -> None:
        with TemporaryDirectory() as tmp:
            service = appointments.build_service(SchedulingSettings(data_dir=Path(tmp)))

        self.assertIsNone(service.registry)
        self.assertIsNone(service.type_catalog)
        self.assertEqual(service.settings.max_occurrences, 500)


if __name__ == "__main__":
    unittest.main()
