"""Data models for foods, dosing steps, protocols and validation warnings."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional

from oitcalc.dosing.constants import (
    DAILY_AMOUNT_CANDIDATES,
    LIQUID_MIX_CANDIDATES,
    SLOW_TARGETS,
    SOLID_MIX_CANDIDATES,
    STANDARD_TARGETS,
)


class FoodType(Enum):
    """Physical form of a food; decides the measuring unit and mixing model."""

    SOLID = "SOLID"
    LIQUID = "LIQUID"
    CAPSULE = "CAPSULE"


class Method(Enum):
    """How a step is administered."""

    DIRECT = "DIRECT"  # neat food
    DILUTE = "DILUTE"  # prepared mixture, a daily portion is drawn from it
    CAPSULE = "CAPSULE"  # pre-weighed


class FoodAStrategy(Enum):
    """Policy for when Food A is diluted across steps."""

    DILUTE_INITIAL = "DILUTE_INITIAL"  # dilute until the neat amount reaches the threshold
    DILUTE_ALL = "DILUTE_ALL"
    DILUTE_NONE = "DILUTE_NONE"


class DosingStrategy(Enum):
    """Preset lists of target protein doses."""

    STANDARD = "STANDARD"
    SLOW = "SLOW"


# Ordered target doses (mg) for each strategy
DOSING_STRATEGIES: dict[DosingStrategy, tuple[Decimal, ...]] = {
    DosingStrategy.STANDARD: STANDARD_TARGETS,
    DosingStrategy.SLOW: SLOW_TARGETS,
}


class FoodLabel(Enum):
    """Which of the protocol's two foods a step uses."""

    A = "A"
    B = "B"


class Unit(Enum):
    """Patient-facing measuring unit."""

    GRAM = "g"
    MILLILITER = "ml"
    CAPSULE = "capsule"


class Severity(Enum):
    """Warning severity."""

    RED = "red"  # critical
    YELLOW = "yellow"  # caution


class WarningCode(Enum):
    """Codes emitted by the protocol validator."""

    # Red
    TOO_FEW_STEPS = "TOO_FEW_STEPS"
    PROTEIN_MISMATCH = "PROTEIN_MISMATCH"
    INSUFFICIENT_MIX_PROTEIN = "INSUFFICIENT_MIX_PROTEIN"
    IMPOSSIBLE_VOLUME = "IMPOSSIBLE_VOLUME"
    INVALID_CONCENTRATION = "INVALID_CONCENTRATION"
    INVALID_TARGET = "INVALID_TARGET"
    INVALID_DILUTION_STEP_VALUES = "INVALID_DILUTION_STEP_VALUES"
    # Yellow
    LOW_SERVINGS = "LOW_SERVINGS"
    NON_ASCENDING_STEPS = "NON_ASCENDING_STEPS"
    BELOW_RESOLUTION = "BELOW_RESOLUTION"
    HIGH_SOLID_CONCENTRATION = "HIGH_SOLID_CONCENTRATION"
    NO_TRANSITION_POINT = "NO_TRANSITION_POINT"
    DUPLICATE_STEP = "DUPLICATE_STEP"
    HIGH_DAILY_AMOUNT = "HIGH_DAILY_AMOUNT"
    HIGH_MIX_WATER = "HIGH_MIX_WATER"
    RAPID_ESCALATION = "RAPID_ESCALATION"

    @property
    def severity(self) -> Severity:
        """Severity implied by the code."""
        if self in _RED_CODES:
            return Severity.RED
        return Severity.YELLOW


_RED_CODES = frozenset(
    {
        WarningCode.TOO_FEW_STEPS,
        WarningCode.PROTEIN_MISMATCH,
        WarningCode.INSUFFICIENT_MIX_PROTEIN,
        WarningCode.IMPOSSIBLE_VOLUME,
        WarningCode.INVALID_CONCENTRATION,
        WarningCode.INVALID_TARGET,
        WarningCode.INVALID_DILUTION_STEP_VALUES,
    }
)


@dataclass(frozen=True)
class Food:
    """A food and its protein concentration.

    The concentration is given as grams of protein in a serving of
    ``serving_size`` grams (SOLID, CAPSULE) or milliliters (LIQUID).
    """

    name: str
    type: FoodType
    grams_in_serving: Decimal
    serving_size: Decimal

    @property
    def mg_per_unit(self) -> Decimal:
        """Milligrams of protein per gram or milliliter of food.

        Zero when the serving size is not positive; the validator reports it.
        """
        if self.serving_size <= 0:
            return Decimal(0)
        return self.grams_in_serving * 1000 / self.serving_size

    @property
    def unit(self) -> Unit:
        """Unit the food itself is measured in."""
        if self.type == FoodType.LIQUID:
            return Unit.MILLILITER
        return Unit.GRAM


@dataclass(frozen=True)
class Step:
    """A single dosing step.

    The mix fields and ``servings`` are only set for DILUTE steps.
    """

    step_index: int
    target_mg: Decimal
    method: Method
    daily_amount: Decimal
    daily_amount_unit: Unit
    food: FoodLabel = FoodLabel.A
    mix_food_amount: Optional[Decimal] = None
    mix_water_amount: Optional[Decimal] = None
    servings: Optional[Decimal] = None

    def mix_total_volume(self, food_type: FoodType) -> Optional[Decimal]:
        """Total mixture volume for a DILUTE step.

        Solids are assumed not to add volume; liquids add to the water.
        """
        if self.mix_food_amount is None or self.mix_water_amount is None:
            return None
        if food_type == FoodType.SOLID:
            return self.mix_water_amount
        return self.mix_food_amount + self.mix_water_amount


@dataclass(frozen=True)
class Candidate:
    """A dilution recipe considered during the candidate search."""

    mix_food_amount: Decimal
    mix_water_amount: Decimal
    daily_amount: Decimal
    mix_total_volume: Decimal
    servings: Decimal


@dataclass(frozen=True)
class ProtocolConfig:
    """Limits and tolerances used to build and check protocols.

    Amounts are in g (mass) or ml (volume); tolerances and concentrations
    are ratios (0.05 = 5%).
    """

    min_measurable_mass: Decimal = Decimal("0.2")  # scale resolution 0.01 g
    min_measurable_volume: Decimal = Decimal("0.2")  # syringe resolution 0.1 ml
    min_servings_for_mix: Decimal = Decimal("3")  # a mixture should last 3 days
    protein_tolerance: Decimal = Decimal("0.05")
    default_food_a_dilution_threshold: Decimal = Decimal("0.2")
    default_food_b_threshold: Decimal = Decimal("0.2")
    max_solid_concentration: Decimal = Decimal("0.05")  # w/v above which the solid adds volume
    max_mix_water: Decimal = Decimal("500")
    max_daily_amount: Decimal = Decimal("250")
    min_steps: int = 5
    solid_mix_candidates: tuple[Decimal, ...] = SOLID_MIX_CANDIDATES
    liquid_mix_candidates: tuple[Decimal, ...] = LIQUID_MIX_CANDIDATES
    daily_amount_candidates: tuple[Decimal, ...] = DAILY_AMOUNT_CANDIDATES

    def min_measurable_for(self, food_type: FoodType) -> Decimal:
        """Smallest practical amount of a food of this type."""
        if food_type == FoodType.SOLID:
            return self.min_measurable_mass
        return self.min_measurable_volume

    def min_measurable_for_unit(self, unit: Unit) -> Decimal:
        """Smallest practical amount in the given unit."""
        if unit == Unit.MILLILITER:
            return self.min_measurable_volume
        return self.min_measurable_mass

    def mix_candidates_for(self, food_type: FoodType) -> tuple[Decimal, ...]:
        """Mix food amounts to try for a food of this type."""
        if food_type == FoodType.SOLID:
            return self.solid_mix_candidates
        return self.liquid_mix_candidates

    def with_overrides(self, **changes) -> "ProtocolConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


DEFAULT_CONFIG = ProtocolConfig()


@dataclass(frozen=True)
class FoodBThreshold:
    """Neat amount of Food B at which the protocol switches to it."""

    unit: Unit
    amount: Decimal


@dataclass(frozen=True)
class Protocol:
    """A complete dosing protocol.

    Protocols are never mutated: every edit builds a new one, so a list of
    them is a usable undo history.
    """

    dosing_strategy: DosingStrategy
    food_a: Food
    food_a_strategy: FoodAStrategy
    di_threshold: Decimal
    steps: tuple[Step, ...]
    config: ProtocolConfig
    food_b: Optional[Food] = None
    food_b_threshold: Optional[FoodBThreshold] = None

    def food_for(self, label: FoodLabel) -> Optional[Food]:
        """Return the food a step label refers to."""
        if label == FoodLabel.A:
            return self.food_a
        return self.food_b


@dataclass(frozen=True)
class ProtocolWarning:
    """A validation finding, optionally scoped to one step."""

    severity: Severity
    code: WarningCode
    message: str
    step_index: Optional[int] = None


# Custom exceptions


class OITCalcError(Exception):
    """Base exception for oitcalc errors."""

    pass


class InvalidProtocolDataError(OITCalcError):
    """Raised when a protocol or food record cannot be parsed."""

    pass


class StepNotFoundError(OITCalcError):
    """Raised when an edit addresses a step that does not exist."""

    def __init__(self, step_index: int, step_count: int):
        super().__init__(
            f"Step {step_index} does not exist (protocol has {step_count} steps)"
        )
        self.step_index = step_index
        self.step_count = step_count
