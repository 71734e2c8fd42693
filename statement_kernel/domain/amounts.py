"""
Amount helpers -- Decimal arithmetic for statement values.

Responsibility:
    Single place for the money conventions every engine shares: amounts are
    ``Decimal`` (never ``float``), the comparison tolerance is one cent, and
    display rounding is ROUND_HALF_UP to two places.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Failure modes:
    - ``to_amount`` raises ``ValueError`` for values that cannot be read as a
      finite number (including NaN and infinity).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext, localcontext

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")


def to_amount(value: object) -> Decimal:
    """
    Convert a raw value (int, str, Decimal, float) to a finite Decimal.

    Floats go through ``str()`` so that 0.1 becomes Decimal("0.1") rather
    than its binary expansion.  ``None`` reads as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Not an amount: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"Not an amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def round_currency(value: Decimal, places: int = 2) -> Decimal:
    """Round to currency precision (ROUND_HALF_UP). Negative zero becomes zero.

    Precision is raised locally when the value has more digits than the
    active context, so any finite value can be rounded.
    """
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, _digits_at(value, places))
        rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded.is_zero():
        return abs(rounded)
    return rounded


def fits_currency(value: Decimal, places: int = 2) -> bool:
    """True when ``value`` rounded to ``places`` fits the active Decimal precision."""
    return value.is_finite() and _digits_at(value, places) <= getcontext().prec


def _digits_at(value: Decimal, places: int) -> int:
    return max(value.adjusted(), 0) + 1 + places


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = TOLERANCE) -> bool:
    """True when |a - b| <= tolerance."""
    return abs(a - b) <= tolerance


def sum_codes(totals: Mapping[str, Decimal], codes: Iterable[str]) -> Decimal:
    """Sum ``totals`` over ``codes``; missing codes count as zero."""
    return sum((totals.get(code, ZERO) for code in codes), ZERO)


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator * 100, rounded to 2dp. Caller guards zero."""
    return round_currency(numerator / denominator * HUNDRED)
