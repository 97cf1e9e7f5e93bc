from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple

from budgie.ledger import COMPOUND_DAILY, COMPOUND_MONTHLY

ZERO = Decimal("0")
ONE = Decimal("1")
BASIS_POINTS = Decimal("10000")
DAYS_PER_YEAR = Decimal("365")
MONTHS_PER_YEAR = Decimal("12")
AVERAGE_MONTH_DAYS = Decimal("30.4375")

SUPPORTED_COMPOUNDS = {COMPOUND_DAILY, COMPOUND_MONTHLY}
COMPOUND_ALIASES = {"d": COMPOUND_DAILY, "m": COMPOUND_MONTHLY}


def accrue(
    balance_cents: int | Decimal,
    apr_bps: int,
    compound: str | None,
    days: int,
) -> Decimal:
    """Interest earned (or owed) on ``balance_cents`` over ``days`` days.

    The result is unrounded and carries the balance's sign, so a negative
    liability balance grows more negative. Unknown compounding codes use the
    daily formula.
    """
    if days <= 0 or apr_bps <= 0:
        return ZERO
    annual = Decimal(apr_bps) / BASIS_POINTS

    if compound_scheme(compound) == COMPOUND_MONTHLY:
        months = Decimal(days) / AVERAGE_MONTH_DAYS
        factor = (ONE + annual / MONTHS_PER_YEAR) ** months - ONE
    else:
        factor = (ONE + annual / DAYS_PER_YEAR) ** days - ONE
    return _coerce_amount(balance_cents) * factor


def accrue_cents(
    balance_cents: int | Decimal,
    apr_bps: int,
    compound: str | None,
    days: int,
) -> int:
    return round_cents(accrue(balance_cents, apr_bps, compound, days))


def accrue_with_carry(
    balance_cents: int | Decimal,
    apr_bps: int,
    compound: str | None,
    days: int,
    carry: Decimal = ZERO,
) -> Tuple[int, Decimal]:
    """Return ``(whole_cents, new_carry)`` for one accrual step.

    The fractional remainder is handed back so the next step can pick it up;
    summed over a series, no fraction of a cent is dropped or invented.
    """
    total = carry + accrue(balance_cents, apr_bps, compound, days)
    whole_cents = int(total)
    return whole_cents, total - whole_cents


def compound_scheme(value: str | None) -> str:
    if value is None:
        return COMPOUND_DAILY
    normalized = value.strip().lower()
    normalized = COMPOUND_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_COMPOUNDS:
        return COMPOUND_DAILY
    return normalized


def validate_compound(value: str | None) -> str:
    if value is None or not value.strip():
        return COMPOUND_DAILY
    normalized = value.strip().lower()
    normalized = COMPOUND_ALIASES.get(normalized, normalized)
    if normalized not in SUPPORTED_COMPOUNDS:
        raise ValueError("interest_compound must be 'daily' or 'monthly'.")
    return normalized


def round_cents(amount: Decimal) -> int:
    return int(amount.quantize(ONE, rounding=ROUND_HALF_UP))


def _coerce_amount(amount: int | Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(amount)
