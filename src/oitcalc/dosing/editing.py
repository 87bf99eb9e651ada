"""Edit operations on protocols.

Each operation takes a Protocol and returns a new one; nothing is modified
in place. Numeric inputs below zero are treated as zero, the way a user
typing into a table cell would expect. Addressing a step that does not
exist raises :class:`StepNotFoundError`.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Optional

from oitcalc.dosing.calculator import (
    derive_mix_water_amount,
    direct_fallback_step,
    generate_step_for_target,
    neat_amount,
    snap_direct_amount,
)
from oitcalc.dosing.models import (
    DOSING_STRATEGIES,
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodBThreshold,
    FoodLabel,
    FoodType,
    Method,
    OITCalcError,
    Protocol,
    Step,
    StepNotFoundError,
)
from oitcalc.dosing.numeric import NumberLike, numeric_context, to_decimal


def _non_negative(value: NumberLike) -> Decimal:
    value = to_decimal(value)
    if value < 0:
        return Decimal(0)
    return value


def _position(protocol: Protocol, step_index: int) -> int:
    """List position of a 1-based step index."""
    if not 1 <= step_index <= len(protocol.steps):
        raise StepNotFoundError(step_index, len(protocol.steps))
    return step_index - 1


def _reindex(steps: list[Step]) -> tuple[Step, ...]:
    return tuple(replace(step, step_index=i) for i, step in enumerate(steps, start=1))


def _with_step(protocol: Protocol, position: int, step: Step) -> Protocol:
    steps = list(protocol.steps)
    steps[position] = step
    return replace(protocol, steps=tuple(steps))


def _food_or_error(protocol: Protocol, label: FoodLabel) -> Food:
    food = protocol.food_for(label)
    if food is None:
        raise OITCalcError(f"Protocol has no Food {label.value}")
    return food


def _strategy_for(protocol: Protocol, label: FoodLabel) -> tuple[FoodAStrategy, Decimal]:
    """Dilution policy used when (re)generating steps for a food."""
    if label == FoodLabel.B:
        threshold = protocol.food_b_threshold
        amount = threshold.amount if threshold is not None else Decimal(0)
        return FoodAStrategy.DILUTE_NONE, amount
    return protocol.food_a_strategy, protocol.di_threshold


def _generate(protocol: Protocol, target_mg: Decimal, step_index: int, label: FoodLabel) -> Step:
    food = _food_or_error(protocol, label)
    strategy, threshold = _strategy_for(protocol, label)
    step = generate_step_for_target(
        target_mg, step_index, food, strategy, threshold, protocol.config, label
    )
    if step is None:
        step = direct_fallback_step(target_mg, step_index, food, label)
    return step


def _dilute_step(
    step: Step,
    food: Food,
    target_mg: Decimal,
    mix_food_amount: Decimal,
    daily_amount: Decimal,
    protocol: Protocol,
) -> Step:
    water = derive_mix_water_amount(
        target_mg, food, mix_food_amount, daily_amount, protocol.config.protein_tolerance
    )
    if food.type == FoodType.SOLID:
        total = water
    else:
        total = mix_food_amount + water
    servings = total / daily_amount if daily_amount > 0 else Decimal(0)
    return replace(
        step,
        target_mg=target_mg,
        daily_amount=daily_amount,
        mix_food_amount=mix_food_amount,
        mix_water_amount=water,
        servings=servings,
    )


def build_steps(protocol: Protocol) -> tuple[Step, ...]:
    """Generate the full step list for a protocol's dosing strategy.

    Without Food B every target uses Food A. With Food B, the first target
    whose neat Food B amount reaches the threshold appears twice: once as
    the last Food A step and once as the first Food B step. Every later
    target uses Food B, given neat.
    """
    food_b = protocol.food_b
    threshold = protocol.food_b_threshold
    steps: list[Step] = []
    on_food_b = False

    for target in DOSING_STRATEGIES[protocol.dosing_strategy]:
        if on_food_b:
            steps.append(_generate(protocol, target, len(steps) + 1, FoodLabel.B))
            continue

        steps.append(_generate(protocol, target, len(steps) + 1, FoodLabel.A))
        if food_b is not None and threshold is not None:
            if neat_amount(target, food_b) >= threshold.amount:
                on_food_b = True
                steps.append(_generate(protocol, target, len(steps) + 1, FoodLabel.B))

    return tuple(steps)


@numeric_context
def recalculate_protocol(protocol: Protocol) -> Protocol:
    """Regenerate every step from the dosing strategy."""
    return replace(protocol, steps=build_steps(protocol))


@numeric_context
def recalculate_step_methods(protocol: Protocol) -> Protocol:
    """Keep each step's target and food but re-decide method and recipe.

    Used after a change to a food or its dilution policy. CAPSULE steps are
    kept as they are.
    """
    steps = []
    for step in protocol.steps:
        if step.method == Method.CAPSULE:
            steps.append(step)
        else:
            steps.append(_generate(protocol, step.target_mg, step.step_index, step.food))
    return replace(protocol, steps=tuple(steps))


@numeric_context
def update_step_target_mg(protocol: Protocol, step_index: int, value: NumberLike) -> Protocol:
    """Change a step's target protein.

    DIRECT steps get a new neat amount. DILUTE steps keep their mix food and
    daily amount and get new water.
    """
    position = _position(protocol, step_index)
    step = protocol.steps[position]
    target = _non_negative(value)
    food = _food_or_error(protocol, step.food)

    if step.method == Method.DIRECT:
        neat = neat_amount(target, food)
        daily = snap_direct_amount(target, food, neat, protocol.config.protein_tolerance)
        return _with_step(protocol, position, replace(step, target_mg=target, daily_amount=daily))
    if step.method == Method.DILUTE:
        updated = _dilute_step(
            step, food, target, step.mix_food_amount or Decimal(0), step.daily_amount, protocol
        )
        return _with_step(protocol, position, updated)
    return _with_step(protocol, position, replace(step, target_mg=target))


@numeric_context
def update_step_daily_amount(protocol: Protocol, step_index: int, value: NumberLike) -> Protocol:
    """Change a step's daily amount.

    For a DIRECT step the target follows the amount. For a DILUTE step the
    target stays and the water is re-derived.
    """
    position = _position(protocol, step_index)
    step = protocol.steps[position]
    daily = _non_negative(value)

    if step.method == Method.DIRECT:
        food = _food_or_error(protocol, step.food)
        target = daily * food.mg_per_unit
        return _with_step(protocol, position, replace(step, daily_amount=daily, target_mg=target))
    if step.method == Method.DILUTE:
        food = _food_or_error(protocol, step.food)
        updated = _dilute_step(
            step, food, step.target_mg, step.mix_food_amount or Decimal(0), daily, protocol
        )
        return _with_step(protocol, position, updated)
    return _with_step(protocol, position, replace(step, daily_amount=daily))


@numeric_context
def update_step_mix_food_amount(protocol: Protocol, step_index: int, value: NumberLike) -> Protocol:
    """Change the food in a DILUTE step's mixture; the water is re-derived.

    Other methods have no mixture, so the protocol is returned unchanged.
    """
    position = _position(protocol, step_index)
    step = protocol.steps[position]
    if step.method != Method.DILUTE:
        return protocol

    food = _food_or_error(protocol, step.food)
    mix_food = _non_negative(value)
    updated = _dilute_step(step, food, step.target_mg, mix_food, step.daily_amount, protocol)
    return _with_step(protocol, position, updated)


def add_step_after(protocol: Protocol, step_index: int) -> Protocol:
    """Insert a copy of a step right after it."""
    position = _position(protocol, step_index)
    steps = list(protocol.steps)
    steps.insert(position + 1, steps[position])
    return replace(protocol, steps=_reindex(steps))


def remove_step(protocol: Protocol, step_index: int) -> Protocol:
    """Delete a step and renumber the rest."""
    position = _position(protocol, step_index)
    steps = list(protocol.steps)
    del steps[position]
    return replace(protocol, steps=_reindex(steps))


@numeric_context
def update_food_details(
    protocol: Protocol,
    label: FoodLabel,
    name: Optional[str] = None,
    grams_in_serving: Optional[NumberLike] = None,
    serving_size: Optional[NumberLike] = None,
) -> Protocol:
    """Change a food's name or protein content and recalculate.

    A Food A change re-decides every step's method. A Food B change can
    move the transition point, so the whole protocol is regenerated.

    Raises:
        OITCalcError: If ``label`` is B and the protocol has no Food B
    """
    food = _food_or_error(protocol, label)
    changes = {}
    if name is not None:
        changes["name"] = name
    if grams_in_serving is not None:
        changes["grams_in_serving"] = _non_negative(grams_in_serving)
    if serving_size is not None:
        changes["serving_size"] = _non_negative(serving_size)
    food = replace(food, **changes)

    if label == FoodLabel.A:
        return recalculate_step_methods(replace(protocol, food_a=food))
    return recalculate_protocol(replace(protocol, food_b=food))


@numeric_context
def set_food_b(
    protocol: Protocol, food: Food, threshold: Optional[NumberLike] = None
) -> Protocol:
    """Add (or replace) the food the protocol transitions to.

    Args:
        protocol: Protocol to change
        food: Food B
        threshold: Neat Food B amount at which to switch; the config
            default when omitted
    """
    if threshold is None:
        amount = protocol.config.default_food_b_threshold
    else:
        amount = _non_negative(threshold)
    updated = replace(
        protocol,
        food_b=food,
        food_b_threshold=FoodBThreshold(unit=food.unit, amount=amount),
    )
    return recalculate_protocol(updated)


@numeric_context
def clear_food_b(protocol: Protocol) -> Protocol:
    """Remove Food B and regenerate a Food A only protocol."""
    return recalculate_protocol(replace(protocol, food_b=None, food_b_threshold=None))


@numeric_context
def update_food_b_threshold(protocol: Protocol, value: NumberLike) -> Protocol:
    """Move the Food B transition threshold and regenerate the steps."""
    food_b = _food_or_error(protocol, FoodLabel.B)
    threshold = FoodBThreshold(unit=food_b.unit, amount=_non_negative(value))
    return recalculate_protocol(replace(protocol, food_b_threshold=threshold))


@numeric_context
def toggle_food_type(protocol: Protocol, label: FoodLabel = FoodLabel.A) -> Protocol:
    """Switch a food between SOLID and LIQUID and re-decide step methods."""
    food = _food_or_error(protocol, label)
    new_type = FoodType.LIQUID if food.type == FoodType.SOLID else FoodType.SOLID
    food = replace(food, type=new_type)

    if label == FoodLabel.A:
        return recalculate_step_methods(replace(protocol, food_a=food))

    threshold = protocol.food_b_threshold
    if threshold is not None:
        threshold = replace(threshold, unit=food.unit)
    return recalculate_step_methods(replace(protocol, food_b=food, food_b_threshold=threshold))


@numeric_context
def set_dosing_strategy(protocol: Protocol, strategy: DosingStrategy) -> Protocol:
    """Switch to another preset target list and regenerate the steps."""
    return recalculate_protocol(replace(protocol, dosing_strategy=strategy))


@numeric_context
def set_food_a_strategy(protocol: Protocol, strategy: FoodAStrategy) -> Protocol:
    """Change when Food A is diluted."""
    return recalculate_step_methods(replace(protocol, food_a_strategy=strategy))


@numeric_context
def set_di_threshold(protocol: Protocol, value: NumberLike) -> Protocol:
    """Change the neat Food A amount below which DILUTE_INITIAL dilutes."""
    return recalculate_step_methods(replace(protocol, di_threshold=_non_negative(value)))
