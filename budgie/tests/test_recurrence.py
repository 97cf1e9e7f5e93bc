import unittest
from datetime import date

from budgie.recurrence import (
    Occurrence,
    Schedule,
    anchor_date,
    expand_schedule,
    expand_schedules,
    normalize_frequency,
    normalize_kind,
)
from budgie.revisions import ScheduleRevision


def _dates(expansion) -> list:
    return [occurrence.date for occurrence in expansion]


class RecurrenceExpansionTests(unittest.TestCase):
    def test_monthly_day_31_clamps_to_short_months(self) -> None:
        schedule = Schedule(
            id=1,
            name="Rent",
            kind="expense",
            amount_cents=150000,
            start_date=date(2025, 1, 31),
            frequency="monthly",
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2025, 1, 1), date(2025, 4, 30))

        self.assertEqual(
            _dates(expansion),
            [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)],
        )

    def test_monthly_day_31_lands_on_leap_day(self) -> None:
        schedule = Schedule(
            id=1,
            name="Rent",
            kind="expense",
            amount_cents=150000,
            start_date=date(2024, 1, 31),
            frequency="monthly",
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2024, 1, 1), date(2024, 3, 31))

        self.assertEqual(
            _dates(expansion),
            [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)],
        )

    def test_explicit_day_of_month_applies_after_start_date(self) -> None:
        schedule = Schedule(
            id=1,
            name="Card payment",
            kind="expense",
            amount_cents=5000,
            start_date=date(2026, 1, 15),
            frequency="monthly",
            day_of_month=31,
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2026, 1, 1), date(2026, 3, 31))

        self.assertEqual(
            _dates(expansion),
            [date(2026, 1, 15), date(2026, 2, 28), date(2026, 3, 31)],
        )

    def test_yearly_leap_day_anchor(self) -> None:
        schedule = Schedule(
            id=4,
            name="Insurance",
            kind="expense",
            amount_cents=7500,
            start_date=date(2024, 2, 29),
            frequency="yearly",
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2024, 1, 1), date(2028, 12, 31))

        self.assertEqual(
            _dates(expansion),
            [
                date(2024, 2, 29),
                date(2025, 2, 28),
                date(2026, 2, 28),
                date(2027, 2, 28),
                date(2028, 2, 29),
            ],
        )

    def test_weekly_day_of_week_shifts_anchor_forward(self) -> None:
        # 2026-01-01 is a Thursday; 1 is Monday.
        schedule = Schedule(
            id=2,
            name="Allowance",
            kind="transfer",
            amount_cents=2000,
            start_date=date(2026, 1, 1),
            frequency="weekly",
            interval=2,
            day_of_week=1,
            src_account_id=1,
            dest_account_id=2,
        )

        self.assertEqual(anchor_date(schedule), date(2026, 1, 5))
        expansion = expand_schedule(schedule, date(2026, 1, 1), date(2026, 1, 31))
        self.assertEqual(_dates(expansion), [date(2026, 1, 5), date(2026, 1, 19)])

    def test_weekly_day_of_week_matching_start_keeps_start(self) -> None:
        # 2026-01-04 is a Sunday.
        schedule = Schedule(
            id=2,
            name="Allowance",
            kind="income",
            amount_cents=2000,
            start_date=date(2026, 1, 4),
            frequency="weekly",
            day_of_week=0,
            dest_account_id=2,
        )

        self.assertEqual(anchor_date(schedule), date(2026, 1, 4))

    def test_daily_schedule_skips_ahead_to_window(self) -> None:
        schedule = Schedule(
            id=3,
            name="Coffee",
            kind="expense",
            amount_cents=450,
            start_date=date(2026, 1, 1),
            frequency="daily",
            interval=3,
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2026, 1, 10), date(2026, 1, 20))

        self.assertEqual(
            _dates(expansion),
            [date(2026, 1, 10), date(2026, 1, 13), date(2026, 1, 16), date(2026, 1, 19)],
        )

    def test_monthly_interval_window_in_the_middle(self) -> None:
        schedule = Schedule(
            id=5,
            name="Water bill",
            kind="expense",
            amount_cents=6000,
            start_date=date(2025, 1, 31),
            frequency="monthly",
            interval=2,
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2025, 6, 1), date(2025, 12, 31))

        self.assertEqual(
            _dates(expansion),
            [date(2025, 7, 31), date(2025, 9, 30), date(2025, 11, 30)],
        )

    def test_end_date_stops_expansion(self) -> None:
        schedule = Schedule(
            id=6,
            name="Loan",
            kind="expense",
            amount_cents=10000,
            start_date=date(2026, 1, 15),
            end_date=date(2026, 3, 15),
            frequency="monthly",
            src_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2026, 1, 1), date(2026, 12, 31))

        self.assertEqual(
            _dates(expansion),
            [date(2026, 1, 15), date(2026, 2, 15), date(2026, 3, 15)],
        )

    def test_inactive_or_future_schedules_yield_nothing(self) -> None:
        inactive = Schedule(
            id=7,
            name="Old gym",
            kind="expense",
            amount_cents=3000,
            start_date=date(2026, 1, 1),
            src_account_id=1,
            is_active=False,
        )
        future = Schedule(
            id=8,
            name="New gym",
            kind="expense",
            amount_cents=3500,
            start_date=date(2027, 1, 1),
            src_account_id=1,
        )

        self.assertEqual(_dates(expand_schedule(inactive, date(2026, 1, 1), date(2026, 12, 31))), [])
        self.assertEqual(_dates(expand_schedule(future, date(2026, 1, 1), date(2026, 12, 31))), [])

    def test_expansion_can_be_iterated_twice(self) -> None:
        schedule = Schedule(
            id=1,
            name="Paycheck",
            kind="income",
            amount_cents=2000,
            start_date=date(2026, 1, 1),
            dest_account_id=1,
        )

        expansion = expand_schedule(schedule, date(2026, 1, 1), date(2026, 6, 30))

        self.assertEqual(list(expansion), list(expansion))
        self.assertEqual(len(list(expansion)), 6)

    def test_occurrences_carry_revised_amounts(self) -> None:
        schedule = Schedule(
            id=1,
            name="Paycheck",
            kind="income",
            amount_cents=2000,
            start_date=date(2026, 1, 1),
            dest_account_id=9,
        )
        revisions = [
            ScheduleRevision(
                id=1, schedule_id=1, effective_date=date(2026, 3, 1), amount_cents=2500
            )
        ]

        expansion = expand_schedule(schedule, date(2026, 1, 1), date(2026, 4, 30), revisions)

        self.assertEqual(
            list(expansion),
            [
                Occurrence(1, date(2026, 1, 1), "income", 2000, None, 9, "Paycheck"),
                Occurrence(1, date(2026, 2, 1), "income", 2000, None, 9, "Paycheck"),
                Occurrence(1, date(2026, 3, 1), "income", 2500, None, 9, "Paycheck"),
                Occurrence(1, date(2026, 4, 1), "income", 2500, None, 9, "Paycheck"),
            ],
        )

    def test_rejects_invalid_interval_and_window(self) -> None:
        schedule = Schedule(
            id=1,
            name="Broken",
            kind="income",
            amount_cents=2000,
            start_date=date(2026, 1, 1),
            interval=0,
            dest_account_id=1,
        )

        with self.assertRaises(ValueError):
            expand_schedule(schedule, date(2026, 1, 1), date(2026, 2, 1))
        with self.assertRaises(ValueError):
            expand_schedules([], date(2026, 2, 1), date(2026, 1, 1))

    def test_expand_schedules_orders_by_date_then_name(self) -> None:
        schedules = [
            Schedule(
                id=1,
                name="Streaming",
                kind="expense",
                amount_cents=1500,
                start_date=date(2026, 1, 5),
                src_account_id=1,
            ),
            Schedule(
                id=2,
                name="Internet",
                kind="expense",
                amount_cents=6000,
                start_date=date(2026, 1, 5),
                src_account_id=1,
            ),
            Schedule(
                id=3,
                name="Paused",
                kind="expense",
                amount_cents=100,
                start_date=date(2026, 1, 1),
                src_account_id=1,
                is_active=False,
            ),
        ]

        occurrences = expand_schedules(schedules, date(2026, 1, 1), date(2026, 2, 10))

        self.assertEqual(
            [(occurrence.date, occurrence.name) for occurrence in occurrences],
            [
                (date(2026, 1, 5), "Internet"),
                (date(2026, 1, 5), "Streaming"),
                (date(2026, 2, 5), "Internet"),
                (date(2026, 2, 5), "Streaming"),
            ],
        )

    def test_monthly_stops_at_last_calendar_year(self) -> None:
        schedule = Schedule(
            id=9,
            name="Far future",
            kind="income",
            amount_cents=2000,
            start_date=date(9999, 1, 1),
            dest_account_id=1,
        )

        dates = _dates(expand_schedule(schedule, date(9999, 1, 1), date(9999, 12, 31)))

        self.assertEqual(len(dates), 12)
        self.assertEqual(dates[-1], date(9999, 12, 1))

    def test_monthly_first_step_past_calendar_yields_nothing(self) -> None:
        schedule = Schedule(
            id=9,
            name="Far future",
            kind="income",
            amount_cents=2000,
            start_date=date(9999, 1, 1),
            interval=2,
            dest_account_id=1,
        )

        expansion = expand_schedule(schedule, date(9999, 12, 15), date(9999, 12, 31))

        self.assertEqual(_dates(expansion), [])

    def test_daily_and_weekly_stop_at_last_calendar_day(self) -> None:
        daily = Schedule(
            id=10,
            name="Coffee",
            kind="expense",
            amount_cents=450,
            start_date=date(9999, 12, 30),
            frequency="daily",
            src_account_id=1,
        )
        weekly = Schedule(
            id=11,
            name="Allowance",
            kind="expense",
            amount_cents=1000,
            start_date=date(9999, 12, 25),
            frequency="weekly",
            src_account_id=1,
        )

        self.assertEqual(
            _dates(expand_schedule(daily, date(9999, 12, 30), date(9999, 12, 31))),
            [date(9999, 12, 30), date(9999, 12, 31)],
        )
        self.assertEqual(
            _dates(expand_schedule(weekly, date(9999, 12, 26), date(9999, 12, 31))), []
        )

    def test_normalizes_codes(self) -> None:
        self.assertEqual(normalize_frequency(" M "), "monthly")
        self.assertEqual(normalize_frequency("Weekly"), "weekly")
        self.assertEqual(normalize_kind("t"), "transfer")
        with self.assertRaises(ValueError):
            normalize_frequency("biweekly")
        with self.assertRaises(ValueError):
            normalize_kind("investment")


if __name__ == "__main__":
    unittest.main()
