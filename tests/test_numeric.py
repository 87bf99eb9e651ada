"""Tests for decimal helpers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, getcontext

import pytest

from oitcalc.dosing.models import Unit
from oitcalc.dosing.numeric import (
    NUMERIC_CONTEXT,
    find_percent_difference,
    format_amount,
    format_number,
    measuring_unit,
    numeric_context,
    round_for_display,
    round_to_increment,
    snap_ceil,
    snap_floor,
    to_decimal,
)


class TestToDecimal:
    """Tests for input conversion."""

    def test_float_goes_through_str(self):
        """0.1 should not carry its binary expansion."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_is_stripped(self):
        assert to_decimal(" 2.5 ") == Decimal("2.5")

    def test_int_and_decimal(self):
        assert to_decimal(3) == Decimal(3)
        value = Decimal("1.25")
        assert to_decimal(value) is value

    def test_bad_string_raises(self):
        with pytest.raises(InvalidOperation):
            to_decimal("abc")


class TestNumericContext:
    """Tests for the shared decimal context."""

    def test_context_applied_inside(self):
        """Decorated functions see the fixed precision."""

        @numeric_context
        def precision():
            return getcontext().prec

        assert precision() == NUMERIC_CONTEXT.prec == 20

    def test_caller_context_untouched(self):
        before = getcontext().prec

        @numeric_context
        def noop():
            return None

        noop()
        assert getcontext().prec == before

    def test_division_by_zero_is_infinite(self):
        """Zero concentrations give Infinity instead of raising."""

        @numeric_context
        def divide():
            return Decimal(1) / Decimal(0)

        assert divide() == Decimal("Infinity")


class TestSnapping:
    """Tests for grid snapping."""

    def test_percent_difference(self):
        assert find_percent_difference(Decimal("105"), Decimal("100")) == Decimal("0.05")
        assert find_percent_difference(Decimal("95"), Decimal("100")) == Decimal("0.05")

    def test_floor_and_ceil(self):
        assert snap_floor(Decimal("9.09"), Decimal("0.5")) == Decimal("9")
        assert snap_ceil(Decimal("9.09"), Decimal("0.5")) == Decimal("9.5")

    def test_aligned_value_unchanged(self):
        assert snap_floor(Decimal("6"), Decimal("0.5")) == Decimal("6")
        assert snap_ceil(Decimal("6"), Decimal("0.5")) == Decimal("6")

    def test_round_half_up(self):
        assert round_to_increment(Decimal("0.25"), Decimal("0.1")) == Decimal("0.3")
        assert round_to_increment(Decimal("1.41"), Decimal("0.1")) == Decimal("1.4")
        assert round_to_increment(Decimal("0.235"), Decimal("0.05")) == Decimal("0.25")


class TestDisplayRounding:
    """Tests for patient-facing rounding and formatting."""

    def test_milliliters_whole(self):
        assert str(round_for_display(Decimal("3.0"), Unit.MILLILITER)) == "3"

    def test_milliliters_fractional(self):
        assert str(round_for_display(Decimal("9.0909"), Unit.MILLILITER)) == "9.1"

    def test_grams_two_decimals(self):
        assert str(round_for_display(Decimal("0.23529"), Unit.GRAM)) == "0.24"
        assert str(round_for_display(Decimal("2"), Unit.GRAM)) == "2.00"

    def test_non_finite_passthrough(self):
        value = Decimal("Infinity")
        assert round_for_display(value, Unit.GRAM) == value

    def test_format_amount(self):
        assert format_amount(Decimal("0.5"), Unit.MILLILITER) == "0.5"
        assert format_amount(None, Unit.GRAM) == ""

    def test_format_number(self):
        assert format_number(Decimal("2.5"), 1) == "2.5"
        assert format_number(Decimal("1"), 2) == "1.00"
        assert format_number(Decimal("Infinity"), 2) == "Infinity"
        assert format_number(None, 1) == ""

    def test_measuring_unit(self, solid_food, liquid_food):
        assert measuring_unit(solid_food) == Unit.GRAM
        assert measuring_unit(liquid_food) == Unit.MILLILITER
