from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Sequence


@dataclass(frozen=True)
class ScheduleRevision:
    id: int
    schedule_id: int
    effective_date: date
    amount_cents: int
    description: str | None = None


class RevisionTimeline:
    """Amount revisions of a single schedule, ordered by effective date.

    Revisions sharing an effective date keep their insertion order, so the
    one created last wins when it is selected.
    """

    def __init__(self, base_amount_cents: int, revisions: Iterable[ScheduleRevision] = ()) -> None:
        self.base_amount_cents = base_amount_cents
        ordered = sorted(revisions, key=lambda rev: rev.effective_date)
        self._dates: List[date] = [rev.effective_date for rev in ordered]
        self._amounts: List[int] = [rev.amount_cents for rev in ordered]

    def __len__(self) -> int:
        return len(self._dates)

    def amount_on(self, occurrence_date: date) -> int:
        position = bisect_right(self._dates, occurrence_date)
        if position == 0:
            return self.base_amount_cents
        return self._amounts[position - 1]


def resolve_amount(
    base_amount_cents: int,
    revisions: Sequence[ScheduleRevision],
    occurrence_date: date,
) -> int:
    return RevisionTimeline(base_amount_cents, revisions).amount_on(occurrence_date)


def group_revisions(
    revisions: Iterable[ScheduleRevision],
) -> Dict[int, List[ScheduleRevision]]:
    grouped: Dict[int, List[ScheduleRevision]] = {}
    for revision in revisions:
        grouped.setdefault(revision.schedule_id, []).append(revision)
    return grouped
