from __future__ import annotations

from dataclasses import dataclass
from calendar import monthrange
from datetime import date, timedelta
from typing import Iterable, Iterator, List, Mapping, Sequence

from budgie.revisions import RevisionTimeline, ScheduleRevision, group_revisions

DAYS_PER_WEEK = 7
MONTHS_PER_YEAR = 12
SUPPORTED_FREQUENCIES = {"daily", "weekly", "monthly", "yearly"}
SUPPORTED_KINDS = {"income", "expense", "transfer"}

FREQUENCY_ALIASES = {"d": "daily", "w": "weekly", "m": "monthly", "y": "yearly"}
KIND_ALIASES = {"i": "income", "e": "expense", "t": "transfer"}


@dataclass(frozen=True)
class Schedule:
    id: int
    name: str
    kind: str
    amount_cents: int
    start_date: date
    frequency: str = "monthly"
    interval: int = 1
    src_account_id: int | None = None
    dest_account_id: int | None = None
    end_date: date | None = None
    day_of_month: int | None = None
    day_of_week: int | None = None
    is_active: bool = True
    description: str | None = None


@dataclass(frozen=True)
class Occurrence:
    schedule_id: int
    date: date
    kind: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    name: str = ""
    description: str | None = None


@dataclass(frozen=True)
class ScheduleExpansion:
    """Occurrences of one schedule inside ``[window_start, window_end]``.

    Iterating builds a fresh generator each time, so the expansion can be
    walked any number of times. Dates are produced in ascending order and the
    walk stops at the window end or the schedule end date, whichever is first.
    """

    schedule: Schedule
    window_start: date
    window_end: date
    timeline: RevisionTimeline

    def __iter__(self) -> Iterator[Occurrence]:
        schedule = self.schedule
        for occurrence_date in iter_occurrence_dates(
            schedule, self.window_start, self.window_end
        ):
            yield Occurrence(
                schedule_id=schedule.id,
                date=occurrence_date,
                kind=schedule.kind,
                amount_cents=self.timeline.amount_on(occurrence_date),
                src_account_id=schedule.src_account_id,
                dest_account_id=schedule.dest_account_id,
                name=schedule.name,
                description=schedule.description,
            )


def expand_schedule(
    schedule: Schedule,
    window_start: date,
    window_end: date,
    revisions: Sequence[ScheduleRevision] = (),
) -> ScheduleExpansion:
    if window_start > window_end:
        raise ValueError("window_start must be on or before window_end.")
    if schedule.interval < 1:
        raise ValueError("schedule.interval must be at least 1.")
    return ScheduleExpansion(
        schedule=schedule,
        window_start=window_start,
        window_end=window_end,
        timeline=RevisionTimeline(schedule.amount_cents, revisions),
    )


def expand_schedules(
    schedules: Iterable[Schedule],
    window_start: date,
    window_end: date,
    revisions: Iterable[ScheduleRevision] = (),
) -> List[Occurrence]:
    if window_start > window_end:
        raise ValueError("window_start must be on or before window_end.")
    revisions_by_schedule: Mapping[int, List[ScheduleRevision]] = group_revisions(revisions)
    occurrences: List[Occurrence] = []
    for schedule in schedules:
        if not schedule.is_active:
            continue
        occurrences.extend(
            expand_schedule(
                schedule,
                window_start,
                window_end,
                revisions_by_schedule.get(schedule.id, ()),
            )
        )
    occurrences.sort(key=lambda occurrence: (occurrence.date, occurrence.name))
    return occurrences


def iter_occurrence_dates(
    schedule: Schedule, window_start: date, window_end: date
) -> Iterator[date]:
    if not schedule.is_active or schedule.start_date > window_end:
        return
    frequency = normalize_frequency(schedule.frequency)
    cutoff = window_end
    if schedule.end_date is not None and schedule.end_date < cutoff:
        cutoff = schedule.end_date

    anchor = anchor_date(schedule, frequency)
    if anchor is None:
        return
    if frequency in {"monthly", "yearly"}:
        months_per_step = schedule.interval
        if frequency == "yearly":
            months_per_step *= MONTHS_PER_YEAR
        dom = target_day_of_month(schedule)
        step = _first_month_step_on_or_after(anchor, window_start, months_per_step, dom)
        current = _month_step(anchor, step, months_per_step, dom)
        while current is not None and current <= cutoff:
            yield current
            step += 1
            current = _month_step(anchor, step, months_per_step, dom)
    else:
        interval_days = schedule.interval
        if frequency == "weekly":
            interval_days *= DAYS_PER_WEEK
        current = _first_occurrence_on_or_after(anchor, window_start, interval_days)
        while current is not None and current <= cutoff:
            yield current
            current = add_days_within_calendar(current, interval_days)


def anchor_date(schedule: Schedule, frequency: str | None = None) -> date | None:
    """First date the schedule aligns to, or None if that falls past ``date.max``."""
    frequency = frequency or normalize_frequency(schedule.frequency)
    if frequency != "weekly" or schedule.day_of_week is None:
        return schedule.start_date
    shift = (schedule.day_of_week - sunday_weekday(schedule.start_date) + DAYS_PER_WEEK) % DAYS_PER_WEEK
    return add_days_within_calendar(schedule.start_date, shift)


def target_day_of_month(schedule: Schedule) -> int:
    if schedule.day_of_month is not None:
        return schedule.day_of_month
    return schedule.start_date.day


def sunday_weekday(value: date) -> int:
    # 0 = Sunday .. 6 = Saturday
    return value.isoweekday() % DAYS_PER_WEEK


def normalize_frequency(value: str) -> str:
    normalized = value.strip().lower()
    normalized = FREQUENCY_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_FREQUENCIES:
        raise ValueError("Only daily, weekly, monthly, or yearly schedules are supported.")
    return normalized


def normalize_kind(value: str) -> str:
    normalized = value.strip().lower()
    normalized = KIND_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_KINDS:
        raise ValueError("Only income, expense, or transfer schedules are supported.")
    return normalized


def add_months_clamped(value: date, months: int, anchor_day: int) -> date:
    total_month = value.month - 1 + months
    year = value.year + total_month // MONTHS_PER_YEAR
    month = total_month % MONTHS_PER_YEAR + 1
    last_day = monthrange(year, month)[1]
    day = min(anchor_day, last_day)
    return date(year, month, day)


def add_days_within_calendar(value: date, days: int) -> date | None:
    """``value + days``, or None when the result would pass ``date.max``."""
    if days > (date.max - value).days:
        return None
    return value + timedelta(days=days)


def _month_step(anchor: date, step: int, months_per_step: int, dom: int) -> date | None:
    if step == 0:
        return anchor
    months = step * months_per_step
    if anchor.year + (anchor.month - 1 + months) // MONTHS_PER_YEAR > date.max.year:
        return None
    return add_months_clamped(anchor, months, dom)


def _first_month_step_on_or_after(
    anchor: date, minimum_date: date, months_per_step: int, dom: int
) -> int:
    if anchor >= minimum_date:
        return 0
    months_between = (minimum_date.year - anchor.year) * MONTHS_PER_YEAR + (
        minimum_date.month - anchor.month
    )
    step = max(months_between // months_per_step, 1)
    candidate = _month_step(anchor, step, months_per_step, dom)
    while candidate is not None and candidate < minimum_date:
        step += 1
        candidate = _month_step(anchor, step, months_per_step, dom)
    return step


def _first_occurrence_on_or_after(
    anchor: date, minimum_date: date, interval_days: int
) -> date | None:
    if anchor >= minimum_date:
        return anchor
    days_between = (minimum_date - anchor).days
    intervals = -(-days_between // interval_days)
    return add_days_within_calendar(anchor, interval_days * intervals)
