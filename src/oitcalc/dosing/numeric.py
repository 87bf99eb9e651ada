"""Decimal arithmetic helpers shared by the calculator and validator.

All dosing math runs on :class:`decimal.Decimal` under one fixed context so
tolerance comparisons do not pick up binary floating point error. The
context is applied per call with :func:`decimal.localcontext`; the caller's
own context is left untouched.
"""

from __future__ import annotations

import functools
from decimal import (
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_UP,
    Context,
    Decimal,
    InvalidOperation,
    Overflow,
    localcontext,
)
from typing import Any, Callable, Optional, TypeVar, Union

from oitcalc.dosing.constants import LIQUID_RESOLUTION, SOLID_RESOLUTION
from oitcalc.dosing.models import Food, Unit

NumberLike = Union[str, int, float, Decimal]

F = TypeVar("F", bound=Callable[..., Any])

# Division by zero is left untrapped: a food with no protein gives an
# infinite neat amount, which the validator reports instead of crashing.
NUMERIC_CONTEXT = Context(
    prec=20,
    rounding=ROUND_HALF_UP,
    traps=[InvalidOperation, Overflow],
)


def numeric_context(func: F) -> F:
    """Run the decorated function under :data:`NUMERIC_CONTEXT`."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with localcontext(NUMERIC_CONTEXT):
            return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def to_decimal(value: NumberLike) -> Decimal:
    """Convert user or file input to a Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1") rather than its
    binary expansion.

    Raises:
        InvalidOperation: If a string is not a number
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    return Decimal(value)


def find_percent_difference(test: Decimal, base: Decimal) -> Decimal:
    """Relative difference of ``test`` from ``base`` (0.1 = 10%)."""
    return abs(test / base - 1)


def snap_floor(value: Decimal, step: Decimal) -> Decimal:
    """Largest multiple of ``step`` not above ``value``."""
    return (value / step).to_integral_value(rounding=ROUND_FLOOR) * step


def snap_ceil(value: Decimal, step: Decimal) -> Decimal:
    """Smallest multiple of ``step`` not below ``value``."""
    return (value / step).to_integral_value(rounding=ROUND_CEILING) * step


def round_to_increment(value: Decimal, step: Decimal) -> Decimal:
    """Nearest multiple of ``step`` (halves round up)."""
    return (value / step).to_integral_value(rounding=ROUND_HALF_UP) * step


def measuring_unit(food: Food) -> Unit:
    """Unit a patient measures this food in: ml for liquids, g otherwise."""
    return food.unit


def round_for_display(value: Decimal, unit: Unit) -> Decimal:
    """Round an amount the way it is shown to patients.

    Grams keep SOLID_RESOLUTION decimals. Milliliters are shown as whole
    numbers when whole, otherwise with LIQUID_RESOLUTION decimals.
    """
    if not value.is_finite():
        return value
    if unit == Unit.MILLILITER:
        if value == value.to_integral_value():
            return value.quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return value.quantize(Decimal(1).scaleb(-LIQUID_RESOLUTION), rounding=ROUND_HALF_UP)
    return value.quantize(Decimal(1).scaleb(-SOLID_RESOLUTION), rounding=ROUND_HALF_UP)


def format_amount(value: Optional[Decimal], unit: Unit) -> str:
    """Format a patient-measured amount, '' for a missing value."""
    if value is None:
        return ""
    with localcontext(NUMERIC_CONTEXT):
        return str(round_for_display(value, unit))


def format_number(value: Optional[Decimal], decimals: int) -> str:
    """Format with a fixed number of decimals, '' for a missing value."""
    if value is None:
        return ""
    if not value.is_finite():
        return str(value)
    with localcontext(NUMERIC_CONTEXT):
        return str(value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP))
