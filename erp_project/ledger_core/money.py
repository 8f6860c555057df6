"""
Money and date normalisation shared by the ledger services.

Amounts are stored as two-place Decimals and summed as integer cents, so
balance checks compare exact integers. Rounding (half-up to the cent) only
happens once, when a value enters the ledger.
"""
import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationFailed

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# matches the DecimalField(max_digits=18) money columns
MAX_DIGITS = 18


def to_decimal(value, places: Decimal = CENT, max_digits: int = MAX_DIGITS) -> Decimal:
    """
    Convert int/str/float/Decimal input into a Decimal rounded to `places`.
    Values that do not fit a DecimalField(max_digits) with that many
    places are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationFailed(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        # go through repr so 0.1 stays 0.1 instead of its binary expansion
        value = repr(value)
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise ValidationFailed(f"Invalid amount: {value!r}")
        if abs(amount) >= Decimal(10) ** (max_digits + places.as_tuple().exponent):
            raise ValidationFailed(f"Amount out of range: {value!r}")
        return amount.quantize(places, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationFailed(f"Invalid amount: {value!r}")


def to_cents(value) -> int:
    """Amount in integer minor units (cents)."""
    return int(to_decimal(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def to_money(value) -> Decimal:
    return from_cents(to_cents(value))


def sum_cents(values: Iterable) -> int:
    return sum((to_cents(v) for v in values), 0)


def as_date(value, field: str = "date") -> datetime.date:
    """Normalise date, datetime or ISO-8601 strings to a date."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_date(value)
            if parsed is None:
                moment = parse_datetime(value)
                parsed = moment.date() if moment else None
        except ValueError:
            # well formed but impossible, e.g. "2025-02-30"
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationFailed(f"Invalid {field}: {value!r}")
