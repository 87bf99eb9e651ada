"""Rule checks over a finished protocol.

Red warnings mark protocols that should not be given to a patient as-is.
Yellow warnings mark steps that are legal but impractical or aggressive.
Validation never raises: bad inputs are reported, and the arithmetic checks
for a step are skipped when its inputs would make them meaningless.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from oitcalc.dosing.calculator import calculate_dilution_actual_protein
from oitcalc.dosing.constants import RAPID_ESCALATION_FACTOR, SMALL_DOSE_MG
from oitcalc.dosing.models import (
    Food,
    FoodLabel,
    FoodType,
    Method,
    Protocol,
    ProtocolConfig,
    ProtocolWarning,
    Severity,
    Step,
    WarningCode,
)
from oitcalc.dosing.numeric import (
    find_percent_difference,
    format_amount,
    format_number,
    numeric_context,
)


def _warning(code: WarningCode, message: str, step_index: Optional[int] = None) -> ProtocolWarning:
    return ProtocolWarning(
        severity=code.severity, code=code, message=message, step_index=step_index
    )


def _mg(value: Decimal) -> str:
    return f"{format_number(value, 1)} mg"


def has_valid_concentration(food: Optional[Food]) -> bool:
    """True if the food can be used in protein arithmetic."""
    if food is None:
        return False
    mg_per_unit = food.mg_per_unit
    if not mg_per_unit.is_finite() or mg_per_unit <= 0:
        return False
    return food.grams_in_serving <= food.serving_size


def _check_food(food: Food, label: str) -> list[ProtocolWarning]:
    warnings = []
    mg_per_unit = food.mg_per_unit
    if not mg_per_unit.is_finite() or mg_per_unit <= 0:
        warnings.append(
            _warning(
                WarningCode.INVALID_CONCENTRATION,
                f"Food {label} ({food.name}): protein concentration must be > 0",
            )
        )
    if food.grams_in_serving > food.serving_size:
        warnings.append(
            _warning(
                WarningCode.INVALID_CONCENTRATION,
                f"Food {label} ({food.name}): protein amount cannot be greater than "
                f"a serving size of {format_number(food.serving_size, 2)} {food.unit.value}",
            )
        )
    return warnings


def _check_global(protocol: Protocol) -> list[ProtocolWarning]:
    config = protocol.config
    warnings = []

    if len(protocol.steps) < config.min_steps:
        warnings.append(
            _warning(
                WarningCode.TOO_FEW_STEPS,
                f"Protocol has {len(protocol.steps)} steps; at least "
                f"{config.min_steps} are needed for a safe escalation",
            )
        )

    warnings.extend(_check_food(protocol.food_a, "A"))
    if protocol.food_b is not None:
        warnings.extend(_check_food(protocol.food_b, "B"))
        if not any(step.food == FoodLabel.B for step in protocol.steps):
            warnings.append(
                _warning(
                    WarningCode.NO_TRANSITION_POINT,
                    f"Food B ({protocol.food_b.name}) is set but no step uses it",
                )
            )
    return warnings


def _dilution_values_valid(step: Step) -> bool:
    values = (step.mix_food_amount, step.mix_water_amount, step.daily_amount, step.servings)
    return all(value is not None and value > 0 for value in values)


def _check_direct(
    step: Step, food: Optional[Food], arithmetic: bool, config: ProtocolConfig
) -> list[ProtocolWarning]:
    warnings = []
    i = step.step_index
    unit = step.daily_amount_unit

    if arithmetic:
        delivered = step.daily_amount * food.mg_per_unit
        if find_percent_difference(delivered, step.target_mg) > config.protein_tolerance:
            warnings.append(
                _warning(
                    WarningCode.PROTEIN_MISMATCH,
                    f"{format_amount(step.daily_amount, unit)} {unit.value} delivers "
                    f"{_mg(delivered)}, target is {_mg(step.target_mg)}",
                    i,
                )
            )

    if step.daily_amount.is_finite():
        min_amount = config.min_measurable_for_unit(unit)
        if step.daily_amount < min_amount:
            warnings.append(
                _warning(
                    WarningCode.BELOW_RESOLUTION,
                    f"Daily amount {format_amount(step.daily_amount, unit)} {unit.value} "
                    f"is below the measurable minimum of {min_amount} {unit.value}",
                    i,
                )
            )
        if step.daily_amount > config.max_daily_amount:
            warnings.append(
                _warning(
                    WarningCode.HIGH_DAILY_AMOUNT,
                    f"Daily amount {format_amount(step.daily_amount, unit)} {unit.value} "
                    f"exceeds {config.max_daily_amount} {unit.value}",
                    i,
                )
            )
    return warnings


def _check_dilute(
    step: Step, food: Optional[Food], arithmetic: bool, config: ProtocolConfig
) -> list[ProtocolWarning]:
    i = step.step_index
    if not _dilution_values_valid(step):
        return [
            _warning(
                WarningCode.INVALID_DILUTION_STEP_VALUES,
                "Mix food, mix water, daily amount and servings must all be > 0",
                i,
            )
        ]

    warnings = []
    mix_food = step.mix_food_amount
    water = step.mix_water_amount
    daily = step.daily_amount
    food_unit = food.unit.value if food is not None else "g"

    if arithmetic:
        total = step.mix_total_volume(food.type)
        delivered = calculate_dilution_actual_protein(food, mix_food, total, daily)
        if delivered is not None and (
            find_percent_difference(delivered, step.target_mg) > config.protein_tolerance
        ):
            warnings.append(
                _warning(
                    WarningCode.PROTEIN_MISMATCH,
                    f"Mixture delivers {_mg(delivered)} per {format_amount(daily, step.daily_amount_unit)} ml, "
                    f"target is {_mg(step.target_mg)}",
                    i,
                )
            )

        mix_protein = mix_food * food.mg_per_unit
        if mix_protein < step.target_mg:
            warnings.append(
                _warning(
                    WarningCode.INSUFFICIENT_MIX_PROTEIN,
                    f"Mixture holds {_mg(mix_protein)} of protein, less than one "
                    f"{_mg(step.target_mg)} dose",
                    i,
                )
            )

        if daily > total:
            if food.type == FoodType.LIQUID:
                message = (
                    f"Daily amount {format_amount(daily, step.daily_amount_unit)} ml exceeds the mixture "
                    f"volume ({format_amount(mix_food, food.unit)} ml food + "
                    f"{format_amount(water, step.daily_amount_unit)} ml water)"
                )
            else:
                message = (
                    f"Daily amount {format_amount(daily, step.daily_amount_unit)} ml exceeds the "
                    f"{format_amount(water, step.daily_amount_unit)} ml of mixture"
                )
            warnings.append(_warning(WarningCode.IMPOSSIBLE_VOLUME, message, i))

        if food.type == FoodType.SOLID and mix_food / water > config.max_solid_concentration:
            warnings.append(
                _warning(
                    WarningCode.HIGH_SOLID_CONCENTRATION,
                    f"{format_amount(mix_food, food.unit)} g in {format_amount(water, step.daily_amount_unit)} ml "
                    f"is above {format_number(config.max_solid_concentration * 100, 0)}% w/v; "
                    "the solid may add noticeable volume",
                    i,
                )
            )

    if step.servings < config.min_servings_for_mix:
        warnings.append(
            _warning(
                WarningCode.LOW_SERVINGS,
                f"Mixture gives {format_number(step.servings, 1)} servings; "
                f"at least {config.min_servings_for_mix} are recommended",
                i,
            )
        )

    if daily < config.min_measurable_volume:
        warnings.append(
            _warning(
                WarningCode.BELOW_RESOLUTION,
                f"Daily amount {format_amount(daily, step.daily_amount_unit)} ml is below the "
                f"measurable minimum of {config.min_measurable_volume} ml",
                i,
            )
        )
    food_type = food.type if food is not None else FoodType.SOLID
    min_mix_food = config.min_measurable_for(food_type)
    if mix_food < min_mix_food:
        warnings.append(
            _warning(
                WarningCode.BELOW_RESOLUTION,
                f"Mix food {format_number(mix_food, 2)} {food_unit} is below the "
                f"measurable minimum of {min_mix_food} {food_unit}",
                i,
            )
        )
    if water < config.min_measurable_volume:
        warnings.append(
            _warning(
                WarningCode.BELOW_RESOLUTION,
                f"Mix water {format_number(water, 2)} ml is below the "
                f"measurable minimum of {config.min_measurable_volume} ml",
                i,
            )
        )

    if daily > config.max_daily_amount:
        warnings.append(
            _warning(
                WarningCode.HIGH_DAILY_AMOUNT,
                f"Daily amount {format_amount(daily, step.daily_amount_unit)} ml exceeds "
                f"{config.max_daily_amount} ml",
                i,
            )
        )
    if water > config.max_mix_water:
        warnings.append(
            _warning(
                WarningCode.HIGH_MIX_WATER,
                f"Mix water {format_amount(water, step.daily_amount_unit)} ml exceeds "
                f"{config.max_mix_water} ml",
                i,
            )
        )
    return warnings


def _check_step(step: Step, protocol: Protocol) -> list[ProtocolWarning]:
    config = protocol.config
    food = protocol.food_for(step.food)
    warnings = []

    if food is None:
        warnings.append(
            _warning(
                WarningCode.INVALID_CONCENTRATION,
                f"Step uses Food {step.food.value} but the protocol has no Food {step.food.value}",
                step.step_index,
            )
        )

    target_valid = step.target_mg > 0
    if not target_valid:
        warnings.append(
            _warning(
                WarningCode.INVALID_TARGET,
                f"Target protein must be > 0 (got {_mg(step.target_mg)})",
                step.step_index,
            )
        )

    arithmetic = target_valid and has_valid_concentration(food)

    if step.method == Method.DIRECT:
        warnings.extend(_check_direct(step, food, arithmetic, config))
    elif step.method == Method.DILUTE:
        warnings.extend(_check_dilute(step, food, arithmetic, config))
    elif step.method == Method.CAPSULE:
        pass
    else:
        raise ValueError(f"Unknown method: {step.method}")
    return warnings


def _check_pair(previous: Step, current: Step) -> list[ProtocolWarning]:
    warnings = []
    i = current.step_index
    prev_mg = previous.target_mg
    cur_mg = current.target_mg

    # Ordering only holds within one food; Food B may restart below Food A.
    if previous.food == current.food:
        if cur_mg == prev_mg:
            warnings.append(
                _warning(
                    WarningCode.DUPLICATE_STEP,
                    f"Same target as step {previous.step_index} ({_mg(cur_mg)})",
                    i,
                )
            )
        if cur_mg <= prev_mg:
            warnings.append(
                _warning(
                    WarningCode.NON_ASCENDING_STEPS,
                    f"Target {_mg(cur_mg)} does not increase from step "
                    f"{previous.step_index} ({_mg(prev_mg)})",
                    i,
                )
            )

    small_doses = prev_mg <= SMALL_DOSE_MG and cur_mg <= SMALL_DOSE_MG
    if prev_mg > 0 and cur_mg > prev_mg * RAPID_ESCALATION_FACTOR and not small_doses:
        warnings.append(
            _warning(
                WarningCode.RAPID_ESCALATION,
                f"Target more than doubles from {_mg(prev_mg)} to {_mg(cur_mg)}",
                i,
            )
        )
    return warnings


def _severity_rank(warning: ProtocolWarning) -> int:
    return 0 if warning.severity == Severity.RED else 1


@numeric_context
def validate_protocol(protocol: Protocol) -> list[ProtocolWarning]:
    """Run every rule over a protocol.

    Args:
        protocol: Protocol to check

    Returns:
        Protocol-wide warnings first, then per-step warnings in step order
        with red before yellow inside each step
    """
    warnings = _check_global(protocol)

    previous: Optional[Step] = None
    for step in protocol.steps:
        step_warnings = _check_step(step, protocol)
        if previous is not None:
            step_warnings.extend(_check_pair(previous, step))
        step_warnings.sort(key=_severity_rank)
        warnings.extend(step_warnings)
        previous = step

    return warnings


def has_red_warnings(warnings: list[ProtocolWarning]) -> bool:
    """True if any warning is critical."""
    return any(w.severity == Severity.RED for w in warnings)
