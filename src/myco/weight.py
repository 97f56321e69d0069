"""Weight conversion, parsing and formatting.

Weights are stored in grams; display follows the user's unit system.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

WeightUnit = Literal["g", "kg", "oz", "lb"]
WeightSystem = Literal["metric", "imperial"]

GRAMS_PER_OZ = 28.3495
GRAMS_PER_LB = 453.592
GRAMS_PER_KG = 1000.0

_GRAMS_PER_UNIT = {"g": 1.0, "kg": GRAMS_PER_KG, "oz": GRAMS_PER_OZ, "lb": GRAMS_PER_LB}

_UNIT_LABELS = {
    "g": ("g", "gram", "grams"),
    "kg": ("kg", "kilogram", "kilograms"),
    "oz": ("oz", "ounce", "ounces"),
    "lb": ("lb", "pound", "pounds"),
}

_NUM = r"(\d+(?:\.\d+)?)"
_COMPOUND_RE = re.compile(rf"^{_NUM}\s*(?:lb|lbs|pounds?)\s*(?:,?\s*)?{_NUM}\s*(?:oz|ounces?)?$")
_UNIT_PATTERNS: list[tuple[re.Pattern, WeightUnit]] = [
    (re.compile(rf"^{_NUM}\s*(?:kg|kilograms?|kilos?)$"), "kg"),
    (re.compile(rf"^{_NUM}\s*(?:g|grams?|gr)$"), "g"),
    (re.compile(rf"^{_NUM}\s*(?:lb|lbs|pounds?)$"), "lb"),
    (re.compile(rf"^{_NUM}\s*(?:oz|ounces?)$"), "oz"),
]
_PLAIN_RE = re.compile(rf"^{_NUM}$")


@dataclass(frozen=True)
class ParsedWeight:
    grams: float
    is_valid: bool
    original_input: str
    detected_unit: WeightUnit | None = None


def to_grams(value: float, unit: str) -> float:
    return value * _GRAMS_PER_UNIT.get(unit, 1.0)


def from_grams(grams: float, unit: str) -> float:
    return grams / _GRAMS_PER_UNIT.get(unit, 1.0)


def convert_weight(value: float, from_unit: WeightUnit, to_unit: WeightUnit) -> float:
    return from_grams(to_grams(value, from_unit), to_unit)


def parse_weight(text: str, default_unit: WeightUnit = "g") -> ParsedWeight:
    """Parse user input such as ``"500"``, ``"1.5kg"``, ``"8 ounces"`` or ``"1 lb 8 oz"``."""
    trimmed = text.strip().lower()
    if not trimmed:
        return ParsedWeight(0.0, False, text)

    match = _COMPOUND_RE.match(trimmed)
    if match:
        grams = to_grams(float(match.group(1)), "lb") + to_grams(float(match.group(2)), "oz")
        return ParsedWeight(grams, True, text, "lb")

    for pattern, unit in _UNIT_PATTERNS:
        match = pattern.match(trimmed)
        if match:
            return ParsedWeight(to_grams(float(match.group(1)), unit), True, text, unit)

    match = _PLAIN_RE.match(trimmed)
    if match:
        return ParsedWeight(to_grams(float(match.group(1)), default_unit), True, text, default_unit)

    return ParsedWeight(0.0, False, text)


def best_unit(grams: float, system: WeightSystem) -> WeightUnit:
    if system == "metric":
        return "kg" if grams >= 1000 else "g"
    return "lb" if from_grams(grams, "oz") >= 16 else "oz"


def _auto_precision(value: float, unit: str) -> int:
    if unit == "g":
        return 0 if value >= 100 else 1 if value >= 10 else 2
    return 1 if value >= 10 else 2


def unit_label(unit: WeightUnit, plural: bool = True, long: bool = False) -> str:
    short, singular, plural_label = _UNIT_LABELS[unit]
    if long:
        return plural_label if plural else singular
    return short


def format_weight(
    grams: float,
    unit: WeightUnit,
    precision: int | None = None,
    include_unit: bool = True,
    long_unit: bool = False,
    force_decimal: bool = False,
) -> str:
    value = from_grams(grams, unit)
    digits = precision if precision is not None else _auto_precision(value, unit)
    if force_decimal or digits > 0:
        formatted = f"{value:.{digits}f}"
    else:
        formatted = str(math.floor(value + 0.5))
    if not force_decimal and "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    if include_unit:
        return f"{formatted} {unit_label(unit, value != 1, long_unit)}"
    return formatted


def format_weight_auto(grams: float, system: WeightSystem, **options) -> str:
    return format_weight(grams, best_unit(grams, system), **options)


def format_weight_compound(grams: float, system: WeightSystem) -> str:
    """Imperial weights of a pound or more render as ``"1 lb 8 oz"``."""
    if system == "metric":
        return format_weight_auto(grams, system)
    total_oz = from_grams(grams, "oz")
    if total_oz < 16:
        return format_weight(grams, "oz")
    lbs = int(total_oz // 16)
    remaining = total_oz % 16
    if remaining < 0.1:
        return f"{lbs} lb"
    oz_text = f"{remaining:.1f}"
    if oz_text.endswith(".0"):
        oz_text = oz_text[:-2]
    return f"{lbs} lb {oz_text} oz"


def all_conversions(grams: float) -> dict[str, str]:
    return {
        "g": format_weight(grams, "g", precision=1),
        "kg": format_weight(grams, "kg", precision=3),
        "oz": format_weight(grams, "oz", precision=2),
        "lb": format_weight(grams, "lb", precision=3),
    }


def conversion_hint(grams: float, current_unit: WeightUnit) -> str:
    conversions = all_conversions(grams)
    if current_unit in ("g", "kg"):
        return conversions["lb"] if grams >= GRAMS_PER_LB else conversions["oz"]
    return conversions["kg"] if grams >= 1000 else conversions["g"]


def default_unit(system: WeightSystem) -> WeightUnit:
    return "g" if system == "metric" else "oz"


def units_for_system(system: WeightSystem) -> list[WeightUnit]:
    return ["g", "kg"] if system == "metric" else ["oz", "lb"]


def is_valid_weight_input(text: str) -> bool:
    parsed = parse_weight(text)
    return parsed.is_valid and parsed.grams >= 0
