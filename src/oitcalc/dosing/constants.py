"""Measurement resolutions, candidate lists and dose presets.

Amounts are grams (solids) or milliliters (liquids, mixtures); doses are
milligrams of protein.
"""

from __future__ import annotations

from decimal import Decimal


def _decimals(*values: str) -> tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


# Decimal places shown to patients
SOLID_RESOLUTION = 2
LIQUID_RESOLUTION = 1

# 13.5 ml is easier to measure than 13.4 ml when protein stays within tolerance
DILUTION_WATER_STEP_RESOLUTION = Decimal("0.5")

# Increments tried, in order, when tidying a neat amount for a DIRECT step
DIRECT_SNAP_INCREMENTS: dict[str, tuple[Decimal, ...]] = {
    "g": _decimals("0.1", "0.05"),
    "ml": _decimals("0.1"),
}

# Target protein per step (mg)
STANDARD_TARGETS = _decimals(
    "1", "2.5", "5", "10", "20", "40", "80", "120", "160", "240", "300"
)
SLOW_TARGETS = _decimals(
    "0.5", "1", "1.5", "2.5", "5", "10", "20", "30", "40", "60", "80",
    "100", "120", "140", "160", "190", "220", "260", "300",
)

# Candidate amounts searched when building a dilution
SOLID_MIX_CANDIDATES = _decimals(
    "0.2", "0.25", "0.3", "0.35", "0.4", "0.45", "0.5", "1", "1.5", "2",
    "2.5", "3", "3.5", "4", "4.5", "5", "6", "7", "8", "9", "10", "12",
    "14", "16", "18", "20", "25", "30",
)
LIQUID_MIX_CANDIDATES = _decimals(
    "0.2", "0.3", "0.4", "0.5", "0.6", "0.7", "0.8", "0.9", "1", "1.5",
    "2", "2.5", "3", "3.5", "4", "4.5", "5", "6", "7", "8", "9", "10",
    "12", "14", "16", "18", "20", "25", "30",
)
DAILY_AMOUNT_CANDIDATES = _decimals(
    "0.5", "1", "1.5", "2", "2.5", "3", "3.5", "4", "4.5", "5", "6", "7",
    "8", "9", "10", "11", "12", "14", "16", "18", "20",
)

# Escalation checks
RAPID_ESCALATION_FACTOR = Decimal("2")
SMALL_DOSE_MG = Decimal("5")  # both doses at or below this are exempt from the jump check
