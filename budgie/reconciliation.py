from __future__ import annotations

from datetime import date
from typing import Iterable, List, Set, Tuple

from budgie.ledger import Entry
from budgie.recurrence import Occurrence

RealizedKey = Tuple[int, date]


def realized_occurrence_keys(entries: Iterable[Entry]) -> Set[RealizedKey]:
    """Collect ``(schedule_id, date)`` pairs already posted as ledger entries.

    Entries without an owning schedule never realize an occurrence.
    """
    keys: Set[RealizedKey] = set()
    for entry in entries:
        if entry.schedule_id is None:
            continue
        keys.add((entry.schedule_id, entry.entry_date))
    return keys


def reconcile_occurrences(
    occurrences: Iterable[Occurrence],
    entries: Iterable[Entry],
) -> List[Occurrence]:
    realized = realized_occurrence_keys(entries)
    return [
        occurrence
        for occurrence in occurrences
        if (occurrence.schedule_id, occurrence.date) not in realized
    ]
