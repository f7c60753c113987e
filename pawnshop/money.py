"""
Money helpers.

Single-currency (INR) amounts as Decimal, NEVER float. Values are rounded to
paise with ROUND_HALF_UP whenever they are stored or shown.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Iterable

from .exceptions import ValidationError

getcontext().prec = 28

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Parse a boundary value into Decimal without rounding"""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid {field}: {value}") from e
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}: {value}")
    return result


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Any]) -> Decimal:
    return round_money(sum((to_decimal(v) for v in values), Decimal("0")))


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole as a percentage with 2 dp, 0 when whole is 0"""
    if whole <= 0:
        return ZERO
    return round_money(part / whole * 100)


def format_inr(value: Decimal) -> str:
    return f"₹{round_money(value):,}"
