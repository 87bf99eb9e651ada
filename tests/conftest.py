"""Pytest fixtures for oitcalc tests."""

from __future__ import annotations

from decimal import Decimal

import pytest

from oitcalc.config import settings as settings_module
from oitcalc.config.settings import Settings
from oitcalc.dosing.calculator import generate_default_protocol
from oitcalc.dosing.models import Food, FoodType


@pytest.fixture
def solid_food():
    """Solid food with 100 mg of protein per gram."""
    return Food(
        name="Peanut flour",
        type=FoodType.SOLID,
        grams_in_serving=Decimal("10"),
        serving_size=Decimal("100"),
    )


@pytest.fixture
def liquid_food():
    """Liquid food with 20 mg of protein per ml."""
    return Food(
        name="Almond milk",
        type=FoodType.LIQUID,
        grams_in_serving=Decimal("5"),
        serving_size=Decimal("250"),
    )


@pytest.fixture
def food_b():
    """Solid food with 200 mg of protein per gram, used as Food B."""
    return Food(
        name="Almonds",
        type=FoodType.SOLID,
        grams_in_serving=Decimal("20"),
        serving_size=Decimal("100"),
    )


@pytest.fixture
def default_protocol(solid_food):
    """STANDARD protocol for the solid food.

    Steps 1-4 (1, 2.5, 5, 10 mg) are dilutions; steps 5-11 are direct.
    """
    return generate_default_protocol(solid_food)


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    """Use built-in settings instead of the user's config file."""
    monkeypatch.setattr(settings_module, "_settings", Settings())
    yield
