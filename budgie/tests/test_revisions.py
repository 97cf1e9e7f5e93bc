import unittest
from datetime import date

from budgie.revisions import (
    RevisionTimeline,
    ScheduleRevision,
    group_revisions,
    resolve_amount,
)


class RevisionResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.revisions = [
            ScheduleRevision(
                id=1, schedule_id=3, effective_date=date(2026, 2, 1), amount_cents=1500
            ),
            ScheduleRevision(
                id=2, schedule_id=3, effective_date=date(2026, 4, 1), amount_cents=1800
            ),
        ]

    def test_base_amount_without_revisions(self) -> None:
        self.assertEqual(resolve_amount(1000, [], date(2026, 5, 1)), 1000)

    def test_base_amount_before_first_revision(self) -> None:
        self.assertEqual(resolve_amount(1000, self.revisions, date(2026, 1, 31)), 1000)

    def test_latest_qualifying_revision_wins(self) -> None:
        self.assertEqual(resolve_amount(1000, self.revisions, date(2026, 2, 1)), 1500)
        self.assertEqual(resolve_amount(1000, self.revisions, date(2026, 3, 31)), 1500)
        self.assertEqual(resolve_amount(1000, self.revisions, date(2026, 4, 1)), 1800)
        self.assertEqual(resolve_amount(1000, self.revisions, date(2030, 1, 1)), 1800)

    def test_input_order_of_dates_does_not_matter(self) -> None:
        reversed_revisions = list(reversed(self.revisions))

        self.assertEqual(resolve_amount(1000, reversed_revisions, date(2026, 3, 1)), 1500)
        self.assertEqual(resolve_amount(1000, reversed_revisions, date(2026, 4, 2)), 1800)

    def test_same_effective_date_prefers_latest_created(self) -> None:
        first = ScheduleRevision(
            id=10, schedule_id=3, effective_date=date(2026, 3, 1), amount_cents=100
        )
        second = ScheduleRevision(
            id=11, schedule_id=3, effective_date=date(2026, 3, 1), amount_cents=200
        )

        self.assertEqual(resolve_amount(50, [first, second], date(2026, 3, 1)), 200)
        self.assertEqual(resolve_amount(50, [second, first], date(2026, 3, 1)), 100)

    def test_timeline_reports_revision_count(self) -> None:
        timeline = RevisionTimeline(1000, self.revisions)

        self.assertEqual(len(timeline), 2)
        self.assertEqual(timeline.amount_on(date(2026, 1, 1)), 1000)

    def test_group_revisions_by_schedule(self) -> None:
        other = ScheduleRevision(
            id=3, schedule_id=4, effective_date=date(2026, 1, 1), amount_cents=900
        )

        grouped = group_revisions(self.revisions + [other])

        self.assertEqual(grouped[3], self.revisions)
        self.assertEqual(grouped[4], [other])


if __name__ == "__main__":
    unittest.main()
