"""Display formatting for weights."""
from __future__ import annotations

from enum import Enum

GRAMS_TO_OUNCES = 0.035274


class WeightUnit(str, Enum):
    GRAMS = "g"
    OUNCES = "oz"


def convert(grams: float, unit: WeightUnit) -> float:
    if unit is WeightUnit.OUNCES:
        return grams * GRAMS_TO_OUNCES
    return grams


def format_weight(grams: float, unit: WeightUnit = WeightUnit.GRAMS) -> str:
    """Format with fewer decimals as the value grows."""

    value = convert(grams, unit)
    if unit is WeightUnit.OUNCES:
        if value < 0.1:
            return f"{value:.3f} oz"
        if value < 10:
            return f"{value:.2f} oz"
        return f"{value:.1f} oz"
    if value < 1:
        return f"{value:.2f} g"
    if value < 100:
        return f"{value:.1f} g"
    return f"{value:.0f} g"


def toggle(unit: WeightUnit) -> WeightUnit:
    return WeightUnit.OUNCES if unit is WeightUnit.GRAMS else WeightUnit.GRAMS


__all__ = ["GRAMS_TO_OUNCES", "WeightUnit", "convert", "format_weight", "toggle"]
