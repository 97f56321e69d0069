"""Temperature display helpers.

Temperatures are stored in Fahrenheit. ``metric`` preference displays Celsius,
``imperial`` displays the stored value unchanged.
"""

from __future__ import annotations

import math
from typing import Literal

TemperatureSystem = Literal["metric", "imperial"]


def _round_half_up(value: float) -> int:
    # ties go toward +inf, matching the values the browser client stored
    return math.floor(value + 0.5)


def fahrenheit_to_celsius(f: float) -> int:
    return _round_half_up((f - 32) * 5 / 9)


def celsius_to_fahrenheit(c: float) -> int:
    return _round_half_up(c * 9 / 5 + 32)


def temperature_unit_symbol(system: TemperatureSystem) -> str:
    return "°C" if system == "metric" else "°F"


def format_temperature(temp_f: float, system: TemperatureSystem, include_unit: bool = True) -> str:
    value = fahrenheit_to_celsius(temp_f) if system == "metric" else temp_f
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}{temperature_unit_symbol(system)}" if include_unit else f"{value}"


def format_temperature_range(min_f: float, max_f: float, system: TemperatureSystem) -> str:
    if system == "metric":
        return f"{fahrenheit_to_celsius(min_f)}-{fahrenheit_to_celsius(max_f)}°C"
    return f"{min_f}-{max_f}°F"


def format_temp_range(temp_range: dict | None, system: TemperatureSystem) -> dict | None:
    """Format a ``{min, max, optimal?}`` range for a form field hint."""
    if not temp_range:
        return None
    convert = fahrenheit_to_celsius if system == "metric" else (lambda v: v)
    optimal = temp_range.get("optimal")
    return {
        "min": f"{convert(temp_range['min'])}",
        "max": f"{convert(temp_range['max'])}",
        "optimal": f"{convert(optimal)}" if optimal else None,
        "unit": temperature_unit_symbol(system),
    }
