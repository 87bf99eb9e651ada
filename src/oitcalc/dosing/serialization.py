"""Conversion between Protocol objects and plain protocol records.

A protocol record is a JSON-compatible dict with numbers stored as strings:

    {
        "name": "...",
        "dosing_strategy": "STANDARD",
        "food_a": {"type": "SOLID", "name": "...", "gramsInServing": "25", "servingSize": "100"},
        "food_a_strategy": "DILUTE_INITIAL",
        "di_threshold": "0.2",
        "food_b": {...},                # optional
        "food_b_threshold": "0.2",      # optional
        "table": [
            {"food": "A", "protein": "1", "method": "DILUTE",
             "daily_amount": "1", "mix_amount": "0.2", "water_amount": "49.5"},
            {"food": "A", "protein": "80", "method": "DIRECT", "daily_amount": "0.32"},
            {"food": "A", "protein": "300", "method": "CAPSULE"},
        ],
        "custom_note": "",
    }

Amounts are written rounded to what a patient would measure.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from oitcalc.dosing.models import (
    DEFAULT_CONFIG,
    DosingStrategy,
    Food,
    FoodAStrategy,
    FoodBThreshold,
    FoodLabel,
    FoodType,
    InvalidProtocolDataError,
    Method,
    Protocol,
    ProtocolConfig,
    Step,
    Unit,
)
from oitcalc.dosing.numeric import format_amount, numeric_context, to_decimal

DEFAULT_PROTOCOL_NAME = "Custom Protocol"


def _plain(value: Decimal) -> str:
    """Decimal as a plain string without exponent or trailing zeros."""
    if not value.is_finite():
        return str(value)
    return format(value.normalize(), "f")


def _serialize_food(food: Food) -> dict[str, str]:
    return {
        "type": food.type.value,
        "name": food.name,
        "gramsInServing": _plain(food.grams_in_serving),
        "servingSize": _plain(food.serving_size),
    }


def _serialize_step(step: Step, protocol: Protocol) -> dict[str, str]:
    row = {
        "food": step.food.value,
        "protein": _plain(step.target_mg),
        "method": step.method.value,
    }
    if step.method == Method.CAPSULE:
        return row

    row["daily_amount"] = format_amount(step.daily_amount, step.daily_amount_unit)
    if step.method == Method.DILUTE:
        food = protocol.food_for(step.food)
        food_unit = food.unit if food is not None else Unit.GRAM
        row["mix_amount"] = format_amount(step.mix_food_amount, food_unit)
        row["water_amount"] = format_amount(step.mix_water_amount, Unit.MILLILITER)
    return row


@numeric_context
def serialize_protocol(
    protocol: Protocol, note: str = "", name: str = DEFAULT_PROTOCOL_NAME
) -> dict[str, Any]:
    """Convert a Protocol to a protocol record.

    Args:
        protocol: Protocol to convert
        note: Free-text instructions stored with the protocol
        name: Display name of the record

    Returns:
        A dict that can be passed to json.dump
    """
    data: dict[str, Any] = {
        "name": name,
        "dosing_strategy": protocol.dosing_strategy.value,
        "food_a": _serialize_food(protocol.food_a),
        "food_a_strategy": protocol.food_a_strategy.value,
        "di_threshold": _plain(protocol.di_threshold),
    }
    if protocol.food_b is not None:
        data["food_b"] = _serialize_food(protocol.food_b)
    if protocol.food_b_threshold is not None:
        data["food_b_threshold"] = _plain(protocol.food_b_threshold.amount)
    data["table"] = [_serialize_step(step, protocol) for step in protocol.steps]
    data["custom_note"] = note
    return data


def _number(
    record: dict[str, Any], key: str, context: str, allow_infinite: bool = False
) -> Decimal:
    if key not in record:
        raise InvalidProtocolDataError(f"{context}: missing '{key}'")
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, (str, int, float, Decimal)):
        raise InvalidProtocolDataError(f"{context}: '{key}' must be a number, got {value!r}")
    try:
        number = to_decimal(value)
    except InvalidOperation as e:
        raise InvalidProtocolDataError(f"{context}: '{key}' is not a number: {value!r}") from e
    if number.is_nan() or (number.is_infinite() and not allow_infinite):
        raise InvalidProtocolDataError(f"{context}: '{key}' must be finite, got {value!r}")
    return number


def _enum(enum_cls, record: dict[str, Any], key: str, context: str):
    if key not in record:
        raise InvalidProtocolDataError(f"{context}: missing '{key}'")
    try:
        return enum_cls(record[key])
    except ValueError as e:
        choices = ", ".join(member.value for member in enum_cls)
        raise InvalidProtocolDataError(
            f"{context}: '{key}' must be one of {choices}, got {record[key]!r}"
        ) from e


def _parse_food(record: Any, context: str) -> Food:
    if not isinstance(record, dict):
        raise InvalidProtocolDataError(f"{context}: expected an object")
    name = record.get("name")
    if not isinstance(name, str):
        raise InvalidProtocolDataError(f"{context}: 'name' must be a string")
    return Food(
        name=name,
        type=_enum(FoodType, record, "type", context),
        grams_in_serving=_number(record, "gramsInServing", context),
        serving_size=_number(record, "servingSize", context),
    )


def _parse_step(
    row: Any, step_index: int, food_a: Food, food_b: Optional[Food]
) -> Step:
    context = f"table row {step_index}"
    if not isinstance(row, dict):
        raise InvalidProtocolDataError(f"{context}: expected an object")

    label = _enum(FoodLabel, row, "food", context)
    food = food_a if label == FoodLabel.A else food_b
    if food is None:
        raise InvalidProtocolDataError(f"{context}: uses Food B but the protocol has none")

    target = _number(row, "protein", context)
    method = _enum(Method, row, "method", context)

    if method == Method.CAPSULE:
        return Step(
            step_index=step_index,
            target_mg=target,
            method=Method.CAPSULE,
            daily_amount=Decimal(1),
            daily_amount_unit=Unit.CAPSULE,
            food=label,
        )

    # A food without protein has an infinite neat amount; keep it for the validator.
    daily = _number(row, "daily_amount", context, allow_infinite=method == Method.DIRECT)
    if method == Method.DIRECT:
        return Step(
            step_index=step_index,
            target_mg=target,
            method=Method.DIRECT,
            daily_amount=daily,
            daily_amount_unit=food.unit,
            food=label,
        )

    mix_food = _number(row, "mix_amount", context)
    water = _number(row, "water_amount", context)
    total = water if food.type == FoodType.SOLID else mix_food + water
    servings = total / daily if daily > 0 else Decimal(0)
    return Step(
        step_index=step_index,
        target_mg=target,
        method=Method.DILUTE,
        daily_amount=daily,
        daily_amount_unit=Unit.MILLILITER,
        food=label,
        mix_food_amount=mix_food,
        mix_water_amount=water,
        servings=servings,
    )


@numeric_context
def deserialize_protocol(
    data: dict[str, Any], config: ProtocolConfig = DEFAULT_CONFIG
) -> Protocol:
    """Rebuild a Protocol from a protocol record.

    Steps are taken from the table as written, not regenerated; servings
    for dilutions are computed from the amounts.

    Args:
        data: Protocol record, as produced by serialize_protocol
        config: Limits and tolerances to attach to the protocol

    Returns:
        The Protocol

    Raises:
        InvalidProtocolDataError: If the record is missing fields or holds
            values that cannot be parsed
    """
    if not isinstance(data, dict):
        raise InvalidProtocolDataError("Protocol record must be an object")

    food_a = _parse_food(data.get("food_a"), "food_a")
    food_b = None
    if data.get("food_b") is not None:
        food_b = _parse_food(data["food_b"], "food_b")

    food_b_threshold = None
    if data.get("food_b_threshold") is not None:
        if food_b is None:
            raise InvalidProtocolDataError("food_b_threshold is set but food_b is missing")
        food_b_threshold = FoodBThreshold(
            unit=food_b.unit, amount=_number(data, "food_b_threshold", "protocol")
        )

    table = data.get("table")
    if not isinstance(table, list):
        raise InvalidProtocolDataError("protocol: 'table' must be a list")

    steps = tuple(
        _parse_step(row, i, food_a, food_b) for i, row in enumerate(table, start=1)
    )

    return Protocol(
        dosing_strategy=_enum(DosingStrategy, data, "dosing_strategy", "protocol"),
        food_a=food_a,
        food_a_strategy=_enum(FoodAStrategy, data, "food_a_strategy", "protocol"),
        di_threshold=_number(data, "di_threshold", "protocol"),
        steps=steps,
        config=config,
        food_b=food_b,
        food_b_threshold=food_b_threshold,
    )


def food_from_record(record: dict[str, Any]) -> Food:
    """Build a Food from a food database row.

    Rows look like ``{"Food": "Peanuts, dry roasted", "Mean protein in
    grams": 24.35, "Serving size": 100, "Type": "SOLID"}``.

    Raises:
        InvalidProtocolDataError: If a field is missing or malformed
    """
    if not isinstance(record, dict):
        raise InvalidProtocolDataError("Food record must be an object")
    name = record.get("Food")
    if not isinstance(name, str):
        raise InvalidProtocolDataError("food record: 'Food' must be a string")
    context = f"food record {name!r}"
    return Food(
        name=name,
        type=_enum(FoodType, record, "Type", context),
        grams_in_serving=_number(record, "Mean protein in grams", context),
        serving_size=_number(record, "Serving size", context),
    )


SAMPLE_PROTOCOL: dict[str, Any] = {
    "name": "Almond milk to whole almonds",
    "dosing_strategy": "STANDARD",
    "food_a": {
        "type": "LIQUID",
        "name": "Elmhurst Milked Almonds Unsweetened Beverage",
        "gramsInServing": "5",
        "servingSize": "250",
    },
    "food_a_strategy": "DILUTE_INITIAL",
    "di_threshold": "0.5",
    "food_b": {
        "type": "SOLID",
        "name": "Almonds (dry roasted, unblanched)",
        "gramsInServing": "21",
        "servingSize": "100",
    },
    "food_b_threshold": "0.4",
    "table": [
        {"food": "A", "protein": "1", "method": "DILUTE", "daily_amount": "1", "mix_amount": "1", "water_amount": "19"},
        {"food": "A", "protein": "2.5", "method": "DILUTE", "daily_amount": "1", "mix_amount": "1", "water_amount": "7"},
        {"food": "A", "protein": "5", "method": "DILUTE", "daily_amount": "1", "mix_amount": "1", "water_amount": "3"},
        {"food": "A", "protein": "10", "method": "DIRECT", "daily_amount": "0.5"},
        {"food": "A", "protein": "20", "method": "DIRECT", "daily_amount": "1"},
        {"food": "A", "protein": "40", "method": "DIRECT", "daily_amount": "2"},
        {"food": "A", "protein": "80", "method": "DIRECT", "daily_amount": "4"},
        {"food": "B", "protein": "80", "method": "DIRECT", "daily_amount": "0.4"},
        {"food": "B", "protein": "120", "method": "DIRECT", "daily_amount": "0.6"},
        {"food": "B", "protein": "160", "method": "DIRECT", "daily_amount": "0.8"},
        {"food": "B", "protein": "240", "method": "DIRECT", "daily_amount": "1.1"},
        {"food": "B", "protein": "300", "method": "DIRECT", "daily_amount": "1.4"},
    ],
    "custom_note": (
        "Make a new almond milk mixture at least every 3 days. Refrigerate and "
        "mix well before giving. Please purchase Elmhurst Milked Almonds "
        "Unsweetened Beverage with 5 grams of protein per 1 cup (250mL) serving."
    ),
}
