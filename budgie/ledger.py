from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Tuple

from budgie.recurrence import Schedule
from budgie.revisions import ScheduleRevision

COMPOUND_DAILY = "daily"
COMPOUND_MONTHLY = "monthly"


@dataclass(frozen=True)
class Account:
    id: int
    name: str
    opening_date: date
    opening_balance_cents: int = 0
    is_liability: bool = False
    is_interest_bearing: bool = False
    interest_apr_bps: int = 0
    interest_compound: str = COMPOUND_DAILY
    exclude_from_dashboard: bool = False
    archived_at: date | None = None
    description: str | None = None


@dataclass(frozen=True)
class Entry:
    id: int
    entry_date: date
    name: str
    amount_cents: int
    src_account_id: int | None = None
    dest_account_id: int | None = None
    schedule_id: int | None = None
    description: str | None = None


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time copy of the stored ledger.

    Every balance query runs against one snapshot, so all of its reads see the
    same state.
    """

    accounts: Tuple[Account, ...] = ()
    schedules: Tuple[Schedule, ...] = ()
    revisions: Tuple[ScheduleRevision, ...] = ()
    entries: Tuple[Entry, ...] = ()
    _active: Dict[int, Account] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_active",
            {account.id: account for account in self.accounts if account.archived_at is None},
        )

    def active_accounts(self) -> Dict[int, Account]:
        return dict(self._active)

    def active_schedules(self) -> Tuple[Schedule, ...]:
        return tuple(schedule for schedule in self.schedules if schedule.is_active)
