"""MycoLab kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, canonical_loads
from .temperature import celsius_to_fahrenheit, fahrenheit_to_celsius
from .weight import convert_weight, from_grams, parse_weight, to_grams

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "canonical_loads",
    "celsius_to_fahrenheit",
    "convert_weight",
    "fahrenheit_to_celsius",
    "from_grams",
    "parse_weight",
    "to_grams",
]
