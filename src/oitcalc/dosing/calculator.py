"""Dilution search and step generation.

A target protein dose is either given neat (DIRECT) or drawn daily from a
prepared mixture (DILUTE). For dilutions the search walks every mix food
amount and daily amount in the config, derives the water that would deliver
the target exactly, and then prefers water amounts on a 0.5 ml grid when
those still land within the protein tolerance.

Infeasibility is returned as data: an empty candidate list or ``None``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from oitcalc.dosing.constants import (
    DILUTION_WATER_STEP_RESOLUTION,
    DIRECT_SNAP_INCREMENTS,
)
from oitcalc.dosing.models import (
    DEFAULT_CONFIG,
    DOSING_STRATEGIES,
    Candidate,
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodLabel,
    FoodType,
    Method,
    Protocol,
    ProtocolConfig,
    Step,
    Unit,
)
from oitcalc.dosing.numeric import (
    find_percent_difference,
    numeric_context,
    round_for_display,
    round_to_increment,
    snap_ceil,
    snap_floor,
)

logger = logging.getLogger(__name__)


def neat_amount(target_mg: Decimal, food: Food) -> Decimal:
    """Grams or milliliters of undiluted food that contain ``target_mg``.

    Infinite when the food has no usable protein concentration.
    """
    mg_per_unit = food.mg_per_unit
    if mg_per_unit <= 0:
        return Decimal("Infinity")
    return target_mg / mg_per_unit


def _water_snaps(ideal_water: Decimal) -> list[Decimal]:
    """Floor and ceiling of ``ideal_water`` on the water grid, deduplicated."""
    floor_water = snap_floor(ideal_water, DILUTION_WATER_STEP_RESOLUTION)
    ceil_water = snap_ceil(ideal_water, DILUTION_WATER_STEP_RESOLUTION)
    if ceil_water == floor_water:
        return [floor_water]
    return [floor_water, ceil_water]


@numeric_context
def check_candidate_validity(
    food: Food,
    target_mg: Decimal,
    total_mix_protein: Decimal,
    mix_food: Decimal,
    daily_amount: Decimal,
    water: Decimal,
    config: ProtocolConfig,
) -> Optional[Candidate]:
    """Check one recipe against the practical and tolerance constraints.

    Args:
        food: Food being diluted
        target_mg: Target protein per daily dose (mg)
        total_mix_protein: Protein in ``mix_food`` (mg)
        mix_food: Food in the mixture (g or ml)
        daily_amount: Mixture taken per day (ml)
        water: Water in the mixture (ml)
        config: Limits and tolerances

    Returns:
        The Candidate, or None if any constraint fails
    """
    if food.type == FoodType.SOLID:
        mix_total_volume = water
    else:
        mix_total_volume = mix_food + water

    if daily_amount <= 0 or mix_total_volume <= 0:
        return None

    servings = mix_total_volume / daily_amount
    if servings < config.min_servings_for_mix:
        return None
    if mix_food < config.min_measurable_for(food.type):
        return None
    if daily_amount < config.min_measurable_volume:
        return None
    if water > config.max_mix_water:
        return None
    if water < config.min_measurable_volume:
        return None

    delivered = total_mix_protein / mix_total_volume * daily_amount
    if find_percent_difference(delivered, target_mg) > config.protein_tolerance:
        return None

    return Candidate(
        mix_food_amount=mix_food,
        mix_water_amount=water,
        daily_amount=daily_amount,
        mix_total_volume=mix_total_volume,
        servings=servings,
    )


@numeric_context
def find_dilution_candidates(
    target_mg: Decimal,
    food: Food,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> list[Candidate]:
    """Find practical dilution recipes for a target protein dose.

    Every (mix food, daily amount) pair from the config is tried. The ideal
    water volume is snapped down and up to the 0.5 ml grid; snaps that pass
    are kept, and the unsnapped ideal is only tried when neither does.

    Solids are assumed to add no volume, so the water is the whole mixture.
    Liquids add their own volume to the water.

    Candidates are ordered by:
        1. (SOLID only) daily amounts low enough in w/v concentration first
        2. mix food amount, daily amount, total volume, water (ascending)

    Args:
        target_mg: Target protein per daily dose (mg)
        food: Food to dilute
        config: Limits and tolerances

    Returns:
        Ranked candidates; empty when no recipe is feasible
    """
    mg_per_unit = food.mg_per_unit
    if target_mg <= 0 or mg_per_unit <= 0:
        return []

    candidates: list[Candidate] = []

    for mix_food in config.mix_candidates_for(food.type):
        total_mix_protein = mix_food * mg_per_unit
        ideal_servings = total_mix_protein / target_mg

        for daily_amount in config.daily_amount_candidates:
            ideal_total = daily_amount * ideal_servings
            if food.type == FoodType.SOLID:
                ideal_water = ideal_total
            else:
                ideal_water = ideal_total - mix_food
            if ideal_water < 0:
                continue

            found_snap = False
            for water in _water_snaps(ideal_water):
                candidate = check_candidate_validity(
                    food, target_mg, total_mix_protein, mix_food, daily_amount, water, config
                )
                if candidate is not None:
                    candidates.append(candidate)
                    found_snap = True

            if not found_snap:
                candidate = check_candidate_validity(
                    food, target_mg, total_mix_protein, mix_food, daily_amount, ideal_water, config
                )
                if candidate is not None:
                    candidates.append(candidate)

    # daily >= target / (max w/v * mg_per_unit) keeps mix_food / water under the limit
    min_daily_for_low_concentration: Optional[Decimal] = None
    if food.type == FoodType.SOLID:
        min_daily_for_low_concentration = target_mg / (
            config.max_solid_concentration * mg_per_unit
        )

    def sort_key(c: Candidate):
        if min_daily_for_low_concentration is None:
            concentration_rank = 0
        else:
            concentration_rank = 0 if c.daily_amount >= min_daily_for_low_concentration else 1
        return (
            concentration_rank,
            c.mix_food_amount,
            c.daily_amount,
            c.mix_total_volume,
            c.mix_water_amount,
        )

    candidates.sort(key=sort_key)
    logger.debug(
        "%d dilution candidates for %s mg of %s", len(candidates), target_mg, food.name
    )
    return candidates


@numeric_context
def snap_direct_amount(
    target_mg: Decimal,
    food: Food,
    amount: Decimal,
    tolerance: Decimal,
) -> Decimal:
    """Round a neat amount to an easy-to-measure value if the dose allows.

    The increments for the food's unit are tried in order (grams: 0.1 then
    0.05; milliliters: 0.1). The first rounded value whose protein stays
    within ``tolerance`` of the target wins.

    Args:
        target_mg: Target protein (mg)
        food: Food given neat
        amount: Precise neat amount (g or ml)
        tolerance: Allowed relative protein error

    Returns:
        The rounded amount, or ``amount`` unchanged if no rounding fits
    """
    if not amount.is_finite() or target_mg <= 0:
        return amount

    mg_per_unit = food.mg_per_unit
    for increment in DIRECT_SNAP_INCREMENTS[food.unit.value]:
        snapped = round_to_increment(amount, increment)
        if snapped <= 0:
            continue
        if find_percent_difference(snapped * mg_per_unit, target_mg) <= tolerance:
            return snapped
    return amount


def _needs_dilution(
    neat: Decimal, food_strategy: FoodAStrategy, di_threshold: Decimal
) -> bool:
    if food_strategy == FoodAStrategy.DILUTE_INITIAL:
        return neat < di_threshold
    if food_strategy == FoodAStrategy.DILUTE_ALL:
        return True
    if food_strategy == FoodAStrategy.DILUTE_NONE:
        return False
    raise ValueError(f"Unknown food strategy: {food_strategy}")


@numeric_context
def generate_step_for_target(
    target_mg: Decimal,
    step_index: int,
    food: Food,
    food_strategy: FoodAStrategy,
    di_threshold: Decimal,
    config: ProtocolConfig = DEFAULT_CONFIG,
    food_label: FoodLabel = FoodLabel.A,
) -> Optional[Step]:
    """Build the step that delivers ``target_mg`` of ``food``.

    Args:
        target_mg: Target protein (mg)
        step_index: 1-based position in the protocol
        food: Food for this step
        food_strategy: When to dilute
        di_threshold: Neat amount below which DILUTE_INITIAL dilutes
        config: Limits and tolerances
        food_label: Which protocol food the step uses

    Returns:
        A DIRECT or DILUTE step, or None when a dilution is needed but no
        recipe is feasible
    """
    neat = neat_amount(target_mg, food)

    if _needs_dilution(neat, food_strategy, di_threshold):
        candidates = find_dilution_candidates(target_mg, food, config)
        if not candidates:
            return None
        best = candidates[0]
        return Step(
            step_index=step_index,
            target_mg=target_mg,
            method=Method.DILUTE,
            daily_amount=best.daily_amount,
            daily_amount_unit=Unit.MILLILITER,
            food=food_label,
            mix_food_amount=best.mix_food_amount,
            mix_water_amount=best.mix_water_amount,
            servings=best.servings,
        )

    return Step(
        step_index=step_index,
        target_mg=target_mg,
        method=Method.DIRECT,
        daily_amount=snap_direct_amount(target_mg, food, neat, config.protein_tolerance),
        daily_amount_unit=food.unit,
        food=food_label,
    )


def direct_fallback_step(
    target_mg: Decimal,
    step_index: int,
    food: Food,
    food_label: FoodLabel = FoodLabel.A,
) -> Step:
    """DIRECT step with the precise neat amount, used when dilution fails.

    The amount is usually too small to measure; the validator reports it.
    """
    logger.warning(
        "No feasible dilution for %s mg of %s at step %d; using a direct step",
        target_mg,
        food.name,
        step_index,
    )
    return Step(
        step_index=step_index,
        target_mg=target_mg,
        method=Method.DIRECT,
        daily_amount=neat_amount(target_mg, food),
        daily_amount_unit=food.unit,
        food=food_label,
    )


@numeric_context
def generate_default_protocol(
    food: Food,
    config: ProtocolConfig = DEFAULT_CONFIG,
    dosing_strategy: DosingStrategy = DosingStrategy.STANDARD,
) -> Protocol:
    """Build a starting protocol for a single food.

    Uses the DILUTE_INITIAL strategy with the config's default threshold.
    A target that cannot be diluted still gets a DIRECT step so the
    sequence stays unbroken.

    Args:
        food: Food A
        config: Limits and tolerances
        dosing_strategy: Which preset target list to use

    Returns:
        A protocol with Food A steps only
    """
    food_strategy = FoodAStrategy.DILUTE_INITIAL
    di_threshold = config.default_food_a_dilution_threshold

    steps = []
    for i, target in enumerate(DOSING_STRATEGIES[dosing_strategy], start=1):
        step = generate_step_for_target(target, i, food, food_strategy, di_threshold, config)
        if step is None:
            step = direct_fallback_step(target, i, food)
        steps.append(step)

    return Protocol(
        dosing_strategy=dosing_strategy,
        food_a=food,
        food_a_strategy=food_strategy,
        di_threshold=di_threshold,
        steps=tuple(steps),
        config=config,
    )


@numeric_context
def calculate_dilution_actual_protein(
    food: Food,
    mix_amount: Decimal,
    mix_total_volume: Decimal,
    daily_amount: Decimal,
) -> Optional[Decimal]:
    """Protein (mg) delivered by ``daily_amount`` ml of a mixture.

    Returns:
        The delivered protein, or None if the mixture has no volume
    """
    if mix_total_volume == 0:
        return None
    return mix_amount * food.mg_per_unit * (daily_amount / mix_total_volume)


def _mix_total(food: Food, mix_amount: Decimal, water: Decimal) -> Decimal:
    if food.type == FoodType.SOLID:
        return water
    return water + mix_amount


@numeric_context
def find_rounded_mix_water_amount(
    target_mg: Decimal,
    food: Food,
    mix_amount: Decimal,
    ideal_water_amount: Decimal,
    daily_amount: Decimal,
    tolerance: Decimal,
) -> Optional[Decimal]:
    """Snap a water amount to the 0.5 ml grid if the dose stays in tolerance.

    The mix and daily amounts are first rounded the way they are displayed,
    so the error is measured against what the patient actually prepares.
    Of the floor and ceiling snaps, the one with the smaller error is
    chosen (floor on ties).

    Args:
        target_mg: Target protein (mg)
        food: Food in the mixture
        mix_amount: Food in the mixture (g or ml)
        ideal_water_amount: Exact water for the target (ml)
        daily_amount: Mixture taken per day (ml)
        tolerance: Allowed relative protein error

    Returns:
        The snapped water amount, or None if the caller should keep the
        precise value
    """
    if target_mg <= 0 or not ideal_water_amount.is_finite():
        return None

    rounded_daily = round_for_display(daily_amount, Unit.MILLILITER)
    rounded_mix = round_for_display(mix_amount, food.unit)

    best_water: Optional[Decimal] = None
    best_error: Optional[Decimal] = None
    for water in _water_snaps(ideal_water_amount):
        total = _mix_total(food, rounded_mix, water)
        delivered = calculate_dilution_actual_protein(food, rounded_mix, total, rounded_daily)
        if delivered is None:
            return None
        error = find_percent_difference(delivered, target_mg)
        if best_error is None or error < best_error:
            best_water, best_error = water, error

    if best_error is not None and best_error <= tolerance:
        return best_water
    return None


@numeric_context
def derive_mix_water_amount(
    target_mg: Decimal,
    food: Food,
    mix_amount: Decimal,
    daily_amount: Decimal,
    tolerance: Decimal,
) -> Decimal:
    """Water (ml) for a mixture with a fixed food and daily amount.

    The exact amount is snapped to the 0.5 ml grid when the dose allows.
    Never negative; a mixture that cannot reach the target is left for the
    validator to report.
    """
    mg_per_unit = food.mg_per_unit
    if target_mg <= 0 or mg_per_unit <= 0:
        return Decimal(0)

    ideal_total = daily_amount * (mix_amount * mg_per_unit / target_mg)
    if food.type == FoodType.SOLID:
        ideal_water = ideal_total
    else:
        ideal_water = ideal_total - mix_amount
    if ideal_water < 0:
        return Decimal(0)

    snapped = find_rounded_mix_water_amount(
        target_mg, food, mix_amount, ideal_water, daily_amount, tolerance
    )
    if snapped is None:
        return ideal_water
    return snapped
