import unittest
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from scheduling import (
    Appointment,
    AppointmentStatus,
    RecurrenceError,
    RecurrenceFrequency,
    RecurrencePattern,
    expand,
)


def make_base(start: datetime, minutes: int = 30) -> Appointment:
    return Appointment(
        id="series",
        patient_id="patient-1",
        client_id="client-1",
        resource_ids=frozenset({"P1", "R1"}),
        type_id="1",
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        notes="Follow-up",
    )


class RecurrenceExpansionTests(unittest.TestCase):
    def test_weekly_pattern_includes_end_date(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.WEEKLY, 1, date(2025, 3, 22))

        occurrences = expand(base, pattern)

        self.assertEqual(
            [occurrence.start_time.day for occurrence in occurrences], [1, 8, 15, 22]
        )

    def test_occurrences_copy_base_details(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc), minutes=45)
        pattern = RecurrencePattern(RecurrenceFrequency.DAILY, 2, date(2025, 3, 5))

        occurrences = expand(base, pattern)

        self.assertEqual(len(occurrences), 3)
        for occurrence in occurrences:
            self.assertEqual(occurrence.duration, timedelta(minutes=45))
            self.assertEqual(occurrence.resource_ids, base.resource_ids)
            self.assertEqual(occurrence.type_id, base.type_id)
            self.assertIs(occurrence.status, AppointmentStatus.SCHEDULED)
            self.assertEqual(occurrence.series_id, "series")
        self.assertEqual(len({occurrence.id for occurrence in occurrences}), 3)
        self.assertEqual(occurrences[0].id, "series")
        self.assertEqual(occurrences[1].id, "series-1")

    def test_occurrences_are_independent(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.WEEKLY, 1, date(2025, 3, 15))
        occurrences = expand(base, pattern)

        changed = replace(occurrences[1], notes="Moved", status=AppointmentStatus.CANCELLED)

        self.assertEqual(occurrences[0].notes, "Follow-up")
        self.assertEqual(occurrences[2].notes, "Follow-up")
        self.assertIs(occurrences[1].status, AppointmentStatus.SCHEDULED)
        self.assertNotEqual(changed, occurrences[1])

    def test_monthly_pattern_clamps_month_end_without_drift(self) -> None:
        base = make_base(datetime(2025, 1, 31, 10, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.MONTHLY, 1, date(2025, 4, 30))

        days = [occurrence.start_time.date() for occurrence in expand(base, pattern)]

        self.assertEqual(
            days, [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]
        )

    def test_yearly_pattern(self) -> None:
        base = make_base(datetime(2024, 2, 29, 10, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.YEARLY, 1, date(2028, 3, 1))

        days = [occurrence.start_time.date() for occurrence in expand(base, pattern)]

        self.assertEqual(days[0], date(2024, 2, 29))
        self.assertEqual(days[1], date(2025, 2, 28))
        self.assertEqual(days[-1], date(2028, 2, 29))

    def test_horizon_truncates_expansion(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.DAILY, 1, date(2025, 12, 31))

        occurrences = expand(base, pattern, horizon=date(2025, 3, 3))

        self.assertEqual(len(occurrences), 3)

    def test_end_date_on_base_day_yields_single_occurrence(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.WEEKLY, 1, date(2025, 3, 1))

        self.assertEqual(len(expand(base, pattern)), 1)

    def test_interval_must_be_positive(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        with self.assertRaises(RecurrenceError):
            expand(base, RecurrencePattern(RecurrenceFrequency.DAILY, 0, date(2025, 3, 10)))

    def test_end_date_before_base_is_rejected(self) -> None:
        base = make_base(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))
        with self.assertRaises(RecurrenceError):
            expand(base, RecurrencePattern(RecurrenceFrequency.DAILY, 1, date(2025, 2, 28)))

    def test_cap_exceeded_raises_without_partial_results(self) -> None:
        base = make_base(datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.DAILY, 1, date(2030, 1, 1))

        with self.assertRaises(RecurrenceError):
            expand(base, pattern, max_occurrences=500)

    def test_cap_is_inclusive(self) -> None:
        base = make_base(datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc))
        pattern = RecurrencePattern(RecurrenceFrequency.DAILY, 1, date(2025, 1, 10))

        self.assertEqual(len(expand(base, pattern, max_occurrences=10)), 10)
        with self.assertRaises(RecurrenceError):
            expand(base, pattern, max_occurrences=9)


if __name__ == "__main__":
    unittest.main()
