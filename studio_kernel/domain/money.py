"""
Money -- Decimal parsing and rounding for invoice arithmetic.

Responsibility:
    Turns whatever the editor or a stored row hands us (str, int, float,
    Decimal, None) into ``Decimal`` amounts and positive integer quantities,
    degrading to defaults instead of raising.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are always ``Decimal``; floats are converted through ``str()``.
    - Quantities are always integers >= 1.
    - Rounding to cents is ROUND_HALF_UP and happens only at display or
      persistence boundaries, never inside aggregation.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
ONE_HUNDRED = Decimal("100")
_TWO_PLACES = Decimal("0.01")

# Leading-number prefixes, matching how form inputs are read in the editor:
# "12.50 USD" -> 12.50, "3 hrs" -> 3.
_DECIMAL_PREFIX = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def parse_amount(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Parse a monetary amount.

    Returns ``default`` for None, booleans, empty strings, non-finite values
    and anything without a leading number.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        value = str(value)
    if not isinstance(value, str):
        return default

    match = _DECIMAL_PREFIX.match(value)
    if match is None:
        return default
    try:
        parsed = Decimal(match.group(1))
    except InvalidOperation:
        return default
    return parsed if parsed.is_finite() else default


def parse_quantity(value: Any) -> int:
    """
    Parse a line-item quantity.

    Any parse failure or non-positive value gives 1: a quantity is never
    zero or negative.
    """
    parsed: int | None = None
    if value is None or isinstance(value, bool):
        parsed = None
    elif isinstance(value, int):
        parsed = value
    elif isinstance(value, (float, Decimal)):
        try:
            parsed = int(value)
        except (ValueError, OverflowError, InvalidOperation):
            parsed = None
    elif isinstance(value, str):
        match = _INT_PREFIX.match(value)
        parsed = int(match.group(1)) if match else None

    if parsed is None or parsed <= 0:
        return 1
    return parsed


def to_cents(amount: Decimal) -> Decimal:
    """Round to two decimal places, half up."""
    return amount.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Whole cents for gateway requests (``12.345`` -> ``1235``)."""
    return int((amount * ONE_HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Inverse of ``to_minor_units``."""
    return to_cents(Decimal(cents) / ONE_HUNDRED)


def format_money(amount: Decimal) -> str:
    """Display form used in log labels and receipts (``$1,234.50``)."""
    rounded = to_cents(amount)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,.2f}"
