from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping

from budgie.ledger import Account, Entry, LedgerSnapshot
from budgie.reconciliation import reconcile_occurrences
from budgie.recurrence import Occurrence, expand_schedules

logger = logging.getLogger(__name__)

MODE_ACTUAL = "actual"
MODE_PROJECTED = "projected"
SUPPORTED_MODES = {MODE_ACTUAL, MODE_PROJECTED}


@dataclass(frozen=True)
class BalancePoint:
    account_id: int
    name: str
    balance_cents: int
    opening_balance_cents: int = 0
    delta_cents: int = 0


def normalize_mode(value: str | None, default: str = MODE_ACTUAL) -> str:
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized not in SUPPORTED_MODES:
        raise ValueError("mode must be 'actual' or 'projected'")
    return normalized


def projection_start_date(from_date: date, as_of: date, today: date | None = None) -> date:
    """First date whose scheduled occurrences count toward a projection.

    A window that starts in the future still picks up the occurrences between
    today and the window, but never anything after ``as_of``.
    """
    today = today or date.today()
    start = min(from_date, today)
    return min(start, as_of)


def balances_as_of(
    snapshot: LedgerSnapshot,
    as_of: date,
    mode: str = MODE_ACTUAL,
    from_date: date | None = None,
    today: date | None = None,
    account_id: int | None = None,
) -> List[BalancePoint]:
    mode = normalize_mode(mode)
    if mode == MODE_ACTUAL:
        return actual_balances_as_of(snapshot, as_of, account_id=account_id)
    return projected_balances_as_of(
        snapshot,
        from_date or as_of,
        as_of,
        today=today,
        account_id=account_id,
    )


def actual_balances_as_of(
    snapshot: LedgerSnapshot,
    as_of: date,
    account_id: int | None = None,
) -> List[BalancePoint]:
    accounts = snapshot.active_accounts()
    deltas = entry_deltas(snapshot.entries, accounts, as_of)
    return _balance_points(accounts, deltas, account_id)


def projected_balances_as_of(
    snapshot: LedgerSnapshot,
    from_date: date,
    as_of: date,
    today: date | None = None,
    account_id: int | None = None,
) -> List[BalancePoint]:
    accounts = snapshot.active_accounts()
    deltas = entry_deltas(snapshot.entries, accounts, as_of)

    start = projection_start_date(from_date, as_of, today)
    occurrences = expand_schedules(
        snapshot.active_schedules(), start, as_of, snapshot.revisions
    )
    pending = reconcile_occurrences(occurrences, snapshot.entries)
    for account, delta in occurrence_deltas(pending, accounts).items():
        deltas[account] = deltas.get(account, 0) + delta

    return _balance_points(accounts, deltas, account_id)


def entry_deltas(
    entries: Iterable[Entry],
    accounts: Mapping[int, Account],
    as_of: date,
) -> Dict[int, int]:
    """Net ledger movement per account from entries dated on or before ``as_of``.

    Entries dated before an account's opening date are ignored for that
    account; its opening balance already covers them.
    """
    deltas: Dict[int, int] = {}
    for entry in entries:
        if entry.entry_date > as_of:
            continue
        for account_id, sign in ((entry.src_account_id, -1), (entry.dest_account_id, 1)):
            account = accounts.get(account_id) if account_id is not None else None
            if account is None or entry.entry_date < account.opening_date:
                continue
            deltas[account_id] = deltas.get(account_id, 0) + sign * entry.amount_cents
    return deltas


def occurrence_deltas(
    occurrences: Iterable[Occurrence],
    accounts: Mapping[int, Account],
) -> Dict[int, int]:
    deltas: Dict[int, int] = {}
    for occurrence in occurrences:
        for account_id, sign in (
            (occurrence.src_account_id, -1),
            (occurrence.dest_account_id, 1),
        ):
            if account_id is None:
                continue
            if account_id not in accounts:
                logger.debug(
                    "Skipping occurrence of schedule %s on %s: account %s is not active.",
                    occurrence.schedule_id,
                    occurrence.date,
                    account_id,
                )
                continue
            deltas[account_id] = deltas.get(account_id, 0) + sign * occurrence.amount_cents
    return deltas


def _balance_points(
    accounts: Mapping[int, Account],
    deltas: Mapping[int, int],
    account_id: int | None,
) -> List[BalancePoint]:
    ordered = sorted(accounts.values(), key=lambda account: (account.name, account.id))
    points: List[BalancePoint] = []
    for account in ordered:
        if account_id is not None and account.id != account_id:
            continue
        delta = deltas.get(account.id, 0)
        points.append(
            BalancePoint(
                account_id=account.id,
                name=account.name,
                balance_cents=account.opening_balance_cents + delta,
                opening_balance_cents=account.opening_balance_cents,
                delta_cents=delta,
            )
        )
    return points
