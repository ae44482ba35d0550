import unittest
from datetime import date, datetime, timedelta

from scheduling import Appointment, CellLayout, ValidationError, hour_cells, layout_day, layout_in_cell


def make_appointment(start: datetime, end: datetime) -> Appointment:
    return Appointment(
        id="a1",
        patient_id="patient-1",
        client_id="client-1",
        resource_ids=frozenset({"P1"}),
        type_id="1",
        start_time=start,
        end_time=end,
    )


def hour(value: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 3, value, minute)


class GridLayoutTests(unittest.TestCase):
    def test_appointment_split_across_two_cells(self) -> None:
        appointment = make_appointment(hour(13, 30), hour(15))

        first = layout_in_cell(appointment, hour(13), hour(14))
        second = layout_in_cell(appointment, hour(14), hour(15))

        self.assertEqual(first, CellLayout(top_fraction=0.5, height_fraction=0.5))
        self.assertEqual(second, CellLayout(top_fraction=0.0, height_fraction=1.0))

    def test_appointment_outside_cell_is_not_visible(self) -> None:
        appointment = make_appointment(hour(13, 30), hour(15))
        self.assertIsNone(layout_in_cell(appointment, hour(15), hour(16)))
        self.assertIsNone(layout_in_cell(appointment, hour(12), hour(13)))

    def test_short_appointment_inside_cell(self) -> None:
        appointment = make_appointment(hour(10, 15), hour(10, 30))
        placement = layout_in_cell(appointment, hour(10), hour(11))
        self.assertAlmostEqual(placement.top_fraction, 0.25)
        self.assertAlmostEqual(placement.height_fraction, 0.25)

    def test_fractions_stay_within_unit_interval(self) -> None:
        appointment = make_appointment(hour(7), hour(20))
        for cell_start, cell_end in hour_cells(date(2025, 3, 3)):
            placement = layout_in_cell(appointment, cell_start, cell_end)
            self.assertEqual(placement, CellLayout(0.0, 1.0))

    def test_non_hour_cells(self) -> None:
        appointment = make_appointment(hour(9, 10), hour(9, 20))
        placement = layout_in_cell(appointment, hour(9), hour(9) + timedelta(minutes=30))
        self.assertAlmostEqual(placement.top_fraction, 1 / 3)
        self.assertAlmostEqual(placement.height_fraction, 1 / 3)

    def test_invalid_cell_is_rejected(self) -> None:
        appointment = make_appointment(hour(9), hour(10))
        with self.assertRaises(ValidationError):
            layout_in_cell(appointment, hour(10), hour(10))

    def test_hour_cells_default_grid(self) -> None:
        cells = hour_cells(date(2025, 3, 3))
        self.assertEqual(len(cells), 12)
        self.assertEqual(cells[0], (hour(8), hour(9)))
        self.assertEqual(cells[-1], (hour(19), hour(20)))

    def test_layout_day_returns_one_placement_per_intersected_cell(self) -> None:
        appointment = make_appointment(hour(13, 30), hour(15))
        placements = layout_day(appointment, hour_cells(date(2025, 3, 3)))
        self.assertEqual(
            placements,
            [(hour(13), CellLayout(0.5, 0.5)), (hour(14), CellLayout(0.0, 1.0))],
        )

    def test_to_dict(self) -> None:
        self.assertEqual(CellLayout(0.5, 0.25).to_dict(), {"top": 0.5, "height": 0.25})


if __name__ == "__main__":
    unittest.main()
