"""Dosing engine: dilution search, step generation and protocol validation."""

from oitcalc.dosing.calculator import (
    calculate_dilution_actual_protein,
    find_dilution_candidates,
    find_rounded_mix_water_amount,
    generate_default_protocol,
    generate_step_for_target,
)
from oitcalc.dosing.history import HistoryItem, ProtocolHistory
from oitcalc.dosing.models import (
    DEFAULT_CONFIG,
    Candidate,
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodBThreshold,
    FoodLabel,
    FoodType,
    InvalidProtocolDataError,
    Method,
    OITCalcError,
    Protocol,
    ProtocolConfig,
    ProtocolWarning,
    Severity,
    Step,
    StepNotFoundError,
    Unit,
    WarningCode,
)
from oitcalc.dosing.validator import validate_protocol

__all__ = [
    "FoodType",
    "Method",
    "FoodAStrategy",
    "DosingStrategy",
    "FoodLabel",
    "Unit",
    "Severity",
    "WarningCode",
    "Food",
    "Step",
    "Candidate",
    "ProtocolConfig",
    "DEFAULT_CONFIG",
    "FoodBThreshold",
    "Protocol",
    "ProtocolWarning",
    "OITCalcError",
    "InvalidProtocolDataError",
    "StepNotFoundError",
    "find_dilution_candidates",
    "generate_step_for_target",
    "generate_default_protocol",
    "find_rounded_mix_water_amount",
    "calculate_dilution_actual_protein",
    "validate_protocol",
    "ProtocolHistory",
    "HistoryItem",
]
