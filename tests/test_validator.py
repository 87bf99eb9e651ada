"""Tests for protocol validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from oitcalc.dosing.calculator import generate_default_protocol
from oitcalc.dosing.models import (
    DEFAULT_CONFIG,
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodBThreshold,
    FoodLabel,
    FoodType,
    Method,
    Protocol,
    Severity,
    Step,
    Unit,
    WarningCode,
)
from oitcalc.dosing.serialization import SAMPLE_PROTOCOL, deserialize_protocol
from oitcalc.dosing.validator import (
    has_red_warnings,
    has_valid_concentration,
    validate_protocol,
)


def direct(index, target, daily, food=FoodLabel.A, unit=Unit.GRAM):
    return Step(
        step_index=index,
        target_mg=Decimal(target),
        method=Method.DIRECT,
        daily_amount=Decimal(daily),
        daily_amount_unit=unit,
        food=food,
    )


def dilute(index, target, mix, water, daily, servings, food=FoodLabel.A):
    return Step(
        step_index=index,
        target_mg=Decimal(target),
        method=Method.DILUTE,
        daily_amount=Decimal(daily),
        daily_amount_unit=Unit.MILLILITER,
        food=food,
        mix_food_amount=Decimal(mix),
        mix_water_amount=Decimal(water),
        servings=Decimal(servings),
    )


def make_protocol(steps, food_a, food_b=None, threshold=None, config=DEFAULT_CONFIG):
    food_b_threshold = None
    if food_b is not None and threshold is not None:
        food_b_threshold = FoodBThreshold(unit=food_b.unit, amount=Decimal(threshold))
    return Protocol(
        dosing_strategy=DosingStrategy.STANDARD,
        food_a=food_a,
        food_a_strategy=FoodAStrategy.DILUTE_INITIAL,
        di_threshold=Decimal("0.2"),
        steps=tuple(steps),
        config=config,
        food_b=food_b,
        food_b_threshold=food_b_threshold,
    )


@pytest.fixture
def clean_steps():
    """Five direct steps of a 100 mg/g food that pass every rule."""
    return [
        direct(1, "20", "0.2"),
        direct(2, "40", "0.4"),
        direct(3, "80", "0.8"),
        direct(4, "120", "1.2"),
        direct(5, "160", "1.6"),
    ]


def codes(warnings):
    return [w.code for w in warnings]


class TestCleanProtocols:
    """Protocols that should produce no warnings."""

    def test_default_protocol(self, default_protocol):
        assert validate_protocol(default_protocol) == []

    def test_direct_steps(self, clean_steps, solid_food):
        assert validate_protocol(make_protocol(clean_steps, solid_food)) == []

    def test_sample_protocol(self):
        protocol = deserialize_protocol(SAMPLE_PROTOCOL)
        assert validate_protocol(protocol) == []

    def test_capsule_steps_only_checked_for_order(self, clean_steps, solid_food):
        capsule = Step(
            step_index=6,
            target_mg=Decimal("300"),
            method=Method.CAPSULE,
            daily_amount=Decimal("1"),
            daily_amount_unit=Unit.CAPSULE,
        )
        protocol = make_protocol(clean_steps + [capsule], solid_food)
        assert validate_protocol(protocol) == []


class TestGlobalRules:
    """Protocol-wide rules."""

    def test_too_few_steps(self, clean_steps, solid_food):
        warnings = validate_protocol(make_protocol(clean_steps[:4], solid_food))

        assert codes(warnings) == [WarningCode.TOO_FEW_STEPS]
        assert warnings[0].severity == Severity.RED
        assert warnings[0].step_index is None

    def test_zero_concentration(self):
        """A food without protein is reported, not raised on."""
        food = Food("Water", FoodType.SOLID, Decimal("0"), Decimal("100"))
        warnings = validate_protocol(generate_default_protocol(food))

        invalid = [w for w in warnings if w.code == WarningCode.INVALID_CONCENTRATION]
        assert len(invalid) == 1
        assert "protein concentration must be > 0" in invalid[0].message
        assert WarningCode.PROTEIN_MISMATCH not in codes(warnings)

    def test_protein_above_serving(self, clean_steps):
        food = Food("Impossible", FoodType.SOLID, Decimal("150"), Decimal("100"))
        warnings = validate_protocol(make_protocol(clean_steps, food))

        invalid = [w for w in warnings if w.code == WarningCode.INVALID_CONCENTRATION]
        assert len(invalid) == 1
        assert "protein amount cannot be greater than a serving size of" in invalid[0].message

    def test_no_transition_point(self, clean_steps, solid_food, food_b):
        protocol = make_protocol(clean_steps, solid_food, food_b, "0.2")
        warnings = validate_protocol(protocol)

        assert WarningCode.NO_TRANSITION_POINT in codes(warnings)

    def test_has_valid_concentration(self, solid_food):
        assert has_valid_concentration(solid_food)
        assert not has_valid_concentration(None)
        assert not has_valid_concentration(
            Food("Empty", FoodType.SOLID, Decimal("1"), Decimal("0"))
        )


class TestDirectStepRules:
    """Rules for DIRECT steps."""

    def test_protein_mismatch(self, clean_steps, solid_food):
        clean_steps[0] = direct(1, "20", "0.3")
        warnings = validate_protocol(make_protocol(clean_steps, solid_food))

        assert codes(warnings) == [WarningCode.PROTEIN_MISMATCH]
        assert warnings[0].step_index == 1

    def test_below_resolution(self, clean_steps, solid_food):
        steps = [direct(1, "10", "0.1")] + [
            direct(i + 2, s.target_mg, s.daily_amount) for i, s in enumerate(clean_steps)
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert codes(warnings) == [WarningCode.BELOW_RESOLUTION]
        assert warnings[0].severity == Severity.YELLOW

    def test_high_daily_amount(self, clean_steps, solid_food):
        config = DEFAULT_CONFIG.with_overrides(max_daily_amount=Decimal("1"))
        warnings = validate_protocol(make_protocol(clean_steps, solid_food, config=config))

        assert codes(warnings) == [WarningCode.HIGH_DAILY_AMOUNT] * 2
        assert [w.step_index for w in warnings] == [4, 5]

    def test_invalid_target(self, clean_steps, solid_food):
        steps = [direct(1, "0", "0")] + [
            direct(i + 2, s.target_mg, s.daily_amount) for i, s in enumerate(clean_steps)
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert WarningCode.INVALID_TARGET in codes(warnings)
        assert WarningCode.PROTEIN_MISMATCH not in codes(warnings)

    def test_negative_target(self, clean_steps, solid_food):
        clean_steps[0] = direct(1, "-5", "0.2")
        warnings = validate_protocol(make_protocol(clean_steps, solid_food))

        step_one = [w for w in warnings if w.step_index == 1]
        assert codes(step_one) == [WarningCode.INVALID_TARGET]
        assert "-5.0 mg" in step_one[0].message

    def test_food_b_step_without_food_b(self, clean_steps, solid_food):
        clean_steps[4] = direct(5, "160", "0.8", food=FoodLabel.B)
        warnings = validate_protocol(make_protocol(clean_steps, solid_food))

        assert [(w.code, w.step_index) for w in warnings] == [
            (WarningCode.INVALID_CONCENTRATION, 5)
        ]


class TestDiluteStepRules:
    """Rules for DILUTE steps."""

    def test_valid_dilution(self, clean_steps, solid_food):
        steps = [dilute(1, "1", "0.2", "10", "0.5", "20")] + [
            direct(i + 2, s.target_mg, s.daily_amount) for i, s in enumerate(clean_steps)
        ]
        # 1 -> 20 mg is a rapid jump
        warnings = validate_protocol(make_protocol(steps, solid_food))
        assert codes(warnings) == [WarningCode.RAPID_ESCALATION]

    def test_invalid_values_skip_other_rules(self, clean_steps, solid_food):
        steps = [dilute(1, "1", "0.2", "0", "0.5", "20")] + clean_steps[1:]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        step_codes = [w.code for w in warnings if w.step_index == 1]
        assert step_codes == [WarningCode.INVALID_DILUTION_STEP_VALUES]

    def test_missing_values_are_invalid(self, clean_steps, solid_food):
        broken = Step(
            step_index=1,
            target_mg=Decimal("1"),
            method=Method.DILUTE,
            daily_amount=Decimal("0.5"),
            daily_amount_unit=Unit.MILLILITER,
        )
        warnings = validate_protocol(make_protocol([broken] + clean_steps[1:], solid_food))

        assert WarningCode.INVALID_DILUTION_STEP_VALUES in codes(warnings)

    def test_unworkable_solid_mixture(self, clean_steps, solid_food):
        """0.2 g (20 mg) in 1 ml, 2 ml a day, for a 30 mg target."""
        steps = [dilute(1, "30", "0.2", "1", "2", "0.5")] + clean_steps[1:]
        warnings = validate_protocol(make_protocol(steps, solid_food))
        step_codes = {w.code for w in warnings if w.step_index == 1}

        assert step_codes == {
            WarningCode.PROTEIN_MISMATCH,
            WarningCode.INSUFFICIENT_MIX_PROTEIN,
            WarningCode.IMPOSSIBLE_VOLUME,
            WarningCode.HIGH_SOLID_CONCENTRATION,
            WarningCode.LOW_SERVINGS,
        }

    def test_liquid_impossible_volume_message(self, liquid_food):
        steps = [
            dilute(1, "10", "1", "0.5", "2", "0.75"),
            direct(2, "20", "1", unit=Unit.MILLILITER),
            direct(3, "40", "2", unit=Unit.MILLILITER),
            direct(4, "80", "4", unit=Unit.MILLILITER),
            direct(5, "120", "6", unit=Unit.MILLILITER),
        ]
        warnings = validate_protocol(make_protocol(steps, liquid_food))
        impossible = [w for w in warnings if w.code == WarningCode.IMPOSSIBLE_VOLUME]

        assert len(impossible) == 1
        assert "mixture volume" in impossible[0].message
        assert "ml food" in impossible[0].message

    def test_high_mix_water(self, solid_food):
        """30 g in 600 ml delivers 2.5 mg per 0.5 ml."""
        steps = [dilute(1, "2.5", "30", "600", "0.5", "1200")] + [
            direct(2, "5", "0.05"),
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert WarningCode.HIGH_MIX_WATER in codes(warnings)
        assert WarningCode.PROTEIN_MISMATCH not in [
            w.code for w in warnings if w.step_index == 1
        ]

    def test_below_resolution_mix_food(self, clean_steps, solid_food):
        """0.1 g (10 mg) in 10 ml, 0.5 ml a day, for 0.5 mg."""
        steps = [dilute(1, "0.5", "0.1", "10", "0.5", "20")] + clean_steps[1:]
        warnings = validate_protocol(make_protocol(steps, solid_food))
        step_codes = [w.code for w in warnings if w.step_index == 1]

        assert step_codes == [WarningCode.BELOW_RESOLUTION]


class TestStepSequenceRules:
    """Rules comparing adjacent steps."""

    def test_duplicate_step(self, solid_food):
        steps = [
            direct(1, "20", "0.2"),
            direct(2, "40", "0.4"),
            direct(3, "40", "0.4"),
            direct(4, "80", "0.8"),
            direct(5, "120", "1.2"),
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert [(w.code, w.step_index) for w in warnings] == [
            (WarningCode.DUPLICATE_STEP, 3),
            (WarningCode.NON_ASCENDING_STEPS, 3),
        ]

    def test_non_ascending(self, clean_steps, solid_food):
        clean_steps[0], clean_steps[1] = direct(1, "40", "0.4"), direct(2, "20", "0.2")
        warnings = validate_protocol(make_protocol(clean_steps, solid_food))

        non_ascending = [w for w in warnings if w.code == WarningCode.NON_ASCENDING_STEPS]
        assert [w.step_index for w in non_ascending] == [2]

    def test_rapid_escalation(self, solid_food):
        steps = [direct(1, "10", "0.1"), direct(2, "25", "0.25")]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert WarningCode.RAPID_ESCALATION in codes(warnings)

    def test_small_doses_may_jump(self, solid_food):
        steps = [direct(1, "1", "0.01"), direct(2, "4", "0.04")]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert WarningCode.RAPID_ESCALATION not in codes(warnings)

    def test_jump_past_small_dose_limit(self, solid_food):
        steps = [direct(1, "3", "0.03"), direct(2, "7", "0.07")]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        rapid = [w for w in warnings if w.code == WarningCode.RAPID_ESCALATION]
        assert [w.step_index for w in rapid] == [2]

    def test_exact_doubling_allowed(self, solid_food):
        steps = [direct(1, "10", "0.1"), direct(2, "20", "0.2")]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert WarningCode.RAPID_ESCALATION not in codes(warnings)

    def test_food_b_transition_may_repeat_target(self, solid_food, food_b):
        steps = [
            direct(1, "20", "0.2"),
            direct(2, "40", "0.4"),
            direct(3, "80", "0.8"),
            direct(4, "80", "0.4", food=FoodLabel.B),
            direct(5, "120", "0.6", food=FoodLabel.B),
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food, food_b, "0.4"))

        assert warnings == []

    def test_food_b_may_start_lower(self, solid_food, food_b):
        steps = [
            direct(1, "20", "0.2"),
            direct(2, "40", "0.4"),
            direct(3, "80", "0.8"),
            direct(4, "60", "0.3", food=FoodLabel.B),
            direct(5, "120", "0.6", food=FoodLabel.B),
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food, food_b, "0.3"))

        assert warnings == []

    def test_food_b_steps_must_ascend(self, solid_food, food_b):
        steps = [
            direct(1, "20", "0.2"),
            direct(2, "40", "0.4"),
            direct(3, "80", "0.8"),
            direct(4, "120", "0.6", food=FoodLabel.B),
            direct(5, "100", "0.5", food=FoodLabel.B),
        ]
        warnings = validate_protocol(make_protocol(steps, solid_food, food_b, "0.6"))

        assert [(w.code, w.step_index) for w in warnings] == [
            (WarningCode.NON_ASCENDING_STEPS, 5)
        ]


class TestWarningOrder:
    """Ordering and severity helpers."""

    def test_global_first_then_red_before_yellow(self, solid_food):
        steps = [dilute(1, "30", "0.2", "1", "2", "0.5"), direct(2, "40", "0.4")]
        warnings = validate_protocol(make_protocol(steps, solid_food))

        assert warnings[0].code == WarningCode.TOO_FEW_STEPS
        step_one = [w for w in warnings if w.step_index == 1]
        severities = [w.severity for w in step_one]
        assert severities == sorted(severities, key=lambda s: s != Severity.RED)
        indexes = [w.step_index for w in warnings[1:]]
        assert indexes == sorted(indexes)

    def test_has_red_warnings(self, clean_steps, solid_food):
        assert not has_red_warnings(validate_protocol(make_protocol(clean_steps, solid_food)))
        assert has_red_warnings(validate_protocol(make_protocol(clean_steps[:2], solid_food)))
