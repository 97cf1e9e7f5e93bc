from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List

from budgie.balances import (
    MODE_ACTUAL,
    MODE_PROJECTED,
    BalancePoint,
    actual_balances_as_of,
    normalize_mode,
    projected_balances_as_of,
)
from budgie.interest import ZERO, accrue_with_carry
from budgie.ledger import Account, LedgerSnapshot
from budgie.recurrence import add_days_within_calendar

logger = logging.getLogger(__name__)

MAX_POINTS = 420
MIN_STEP_DAYS = 1
MAX_STEP_DAYS = 366
DEFAULT_STEP_DAYS = 7


class SeriesLimitError(ValueError):
    """Raised when a requested series would hold more than ``max_points`` points."""

    def __init__(self, points: int, max_points: int = MAX_POINTS) -> None:
        super().__init__("requested series is too long")
        self.points = points
        self.max_points = max_points


@dataclass
class AccountSeries:
    account_id: int
    name: str
    is_liability: bool = False
    is_interest_bearing: bool = False
    interest_apr_bps: int = 0
    interest_compound: str = "daily"
    exclude_from_dashboard: bool = False
    values: List[int] = field(default_factory=list)


@dataclass
class Series:
    mode: str
    from_date: date
    to_date: date
    step_days: int
    include_interest: bool
    dates: List[date] = field(default_factory=list)
    totals: List[int] = field(default_factory=list)
    accounts: List[AccountSeries] = field(default_factory=list)


@dataclass
class _AccountState:
    base_previous: int
    adjusted_previous: int
    carry: Decimal = ZERO


def series_point_count(from_date: date, to_date: date, step_days: int) -> int:
    return (to_date - from_date).days // step_days + 1


def validate_series_request(
    from_date: date,
    to_date: date,
    mode: str | None = MODE_PROJECTED,
    step_days: int = DEFAULT_STEP_DAYS,
    include_interest: bool = False,
) -> str:
    """Check series parameters and return the normalized mode.

    Runs before any balance is computed, so an oversized request is rejected
    without doing any work.
    """
    mode = normalize_mode(mode, default=MODE_PROJECTED)
    if step_days < MIN_STEP_DAYS or step_days > MAX_STEP_DAYS:
        raise ValueError(f"step_days must be {MIN_STEP_DAYS}..{MAX_STEP_DAYS}")
    if include_interest and mode != MODE_PROJECTED:
        raise ValueError("include_interest is only supported for mode=projected")
    if to_date < from_date:
        raise ValueError("to_date must be >= from_date")
    points = series_point_count(from_date, to_date, step_days)
    if points > MAX_POINTS:
        raise SeriesLimitError(points)
    return mode


def build_series(
    snapshot: LedgerSnapshot,
    from_date: date,
    to_date: date,
    mode: str | None = MODE_PROJECTED,
    step_days: int = DEFAULT_STEP_DAYS,
    include_interest: bool = False,
    today: date | None = None,
) -> Series:
    mode = validate_series_request(from_date, to_date, mode, step_days, include_interest)
    builder = _SeriesBuilder(
        snapshot,
        mode=mode,
        from_date=from_date,
        to_date=to_date,
        step_days=step_days,
        include_interest=include_interest,
        today=today,
    )
    return builder.build()


class _SeriesBuilder:
    def __init__(
        self,
        snapshot: LedgerSnapshot,
        mode: str,
        from_date: date,
        to_date: date,
        step_days: int,
        include_interest: bool,
        today: date | None,
    ) -> None:
        self.snapshot = snapshot
        self.mode = mode
        self.from_date = from_date
        self.to_date = to_date
        self.step_days = step_days
        self.include_interest = include_interest
        self.today = today or date.today()
        self.accounts: Dict[int, Account] = snapshot.active_accounts()
        self.projection_from = from_date

        self.dates: List[date] = []
        self.totals: List[int] = []
        self.series: Dict[int, AccountSeries] = {}
        self.state: Dict[int, _AccountState] = {}
        self.previous_date: date | None = None

    def build(self) -> Series:
        warm_start = self._interest_start()
        if warm_start is not None and warm_start < self.from_date:
            warm_step = self._warmup_step_days(warm_start)
            self.projection_from = warm_start
            current = warm_start
            while current is not None and current < self.from_date:
                self._process_point(current, record=False)
                current = add_days_within_calendar(current, warm_step)

        current = self.from_date
        while current is not None and current <= self.to_date:
            self._process_point(current, record=True)
            current = add_days_within_calendar(current, self.step_days)

        return Series(
            mode=self.mode,
            from_date=self.from_date,
            to_date=self.to_date,
            step_days=self.step_days,
            include_interest=self.include_interest,
            dates=self.dates,
            totals=self.totals,
            accounts=list(self.series.values()),
        )

    def _interest_start(self) -> date | None:
        if not self.include_interest:
            return None
        openings = [
            account.opening_date
            for account in self.accounts.values()
            if account.is_interest_bearing
        ]
        if not openings:
            return None
        return min(openings)

    def _warmup_step_days(self, warm_start: date) -> int:
        warm_days = (self.from_date - warm_start).days
        points = warm_days // self.step_days + 1
        if points <= MAX_POINTS:
            return self.step_days
        coarse = max(math.ceil(warm_days / (MAX_POINTS - 1)), 1)
        logger.debug(
            "Coarsening interest warm-up from %s to %s day steps over %s days.",
            self.step_days,
            coarse,
            warm_days,
        )
        return coarse

    def _balances(self, as_of: date) -> List[BalancePoint]:
        if self.mode == MODE_ACTUAL:
            return actual_balances_as_of(self.snapshot, as_of)
        return projected_balances_as_of(
            self.snapshot, self.projection_from, as_of, today=self.today
        )

    def _track(self, point: BalancePoint, record: bool) -> None:
        account = self.accounts.get(point.account_id)
        series = AccountSeries(account_id=point.account_id, name=point.name)
        if account is not None:
            series.is_liability = account.is_liability
            series.is_interest_bearing = account.is_interest_bearing
            series.interest_apr_bps = account.interest_apr_bps
            series.interest_compound = account.interest_compound
            series.exclude_from_dashboard = account.exclude_from_dashboard
        if record:
            series.values.extend(0 for _ in self.dates)
        self.series[point.account_id] = series
        self.state[point.account_id] = _AccountState(
            base_previous=point.balance_cents,
            adjusted_previous=point.balance_cents,
        )

    def _accrues(self, account_id: int, current: date) -> bool:
        account = self.accounts.get(account_id)
        if account is None:
            return False
        if not account.is_interest_bearing or account.interest_apr_bps <= 0:
            return False
        return current >= account.opening_date

    def _process_point(self, current: date, record: bool) -> None:
        points = self._balances(current)
        days_since_previous = 0
        if self.previous_date is not None:
            days_since_previous = (current - self.previous_date).days

        total = 0
        for point in points:
            if point.account_id not in self.series:
                self._track(point, record)
            value = point.balance_cents

            if self.include_interest and days_since_previous > 0:
                state = self.state[point.account_id]
                movement = point.balance_cents - state.base_previous
                value = state.adjusted_previous + movement
                if self._accrues(point.account_id, current):
                    account = self.accounts[point.account_id]
                    interest_cents, state.carry = accrue_with_carry(
                        state.adjusted_previous,
                        account.interest_apr_bps,
                        account.interest_compound,
                        days_since_previous,
                        state.carry,
                    )
                    value += interest_cents
                state.base_previous = point.balance_cents
                state.adjusted_previous = value

            total += value
            if record:
                self.series[point.account_id].values.append(value)

        if record:
            self.dates.append(current)
            self.totals.append(total)
            for series in self.series.values():
                if len(series.values) < len(self.dates):
                    series.values.append(0)
        self.previous_date = current
