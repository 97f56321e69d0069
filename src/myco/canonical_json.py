"""Deterministic JSON for draft snapshots and event payloads."""

from __future__ import annotations

import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a value has no canonical JSON form."""


def _check(value: Any, path: str) -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Non-finite float at {path}: {value!r}")
        return
    if isinstance(value, (list, tuple)):
        for idx, item in enumerate(value):
            _check(item, f"{path}[{idx}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(f"Unsupported key type at {path}: {type(key).__name__}")
            _check(item, f"{path}.{key}")
        return
    raise CanonicalJsonTypeError(f"Unsupported type at {path}: {type(value).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Serialize with sorted keys, compact separators and non-ASCII kept.

    Tuples are written as lists. Form data regularly carries emoji icons
    (recipe categories) so ``ensure_ascii`` stays off.
    """
    _check(obj, "$")
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def canonical_loads(text: str | bytes) -> Any:
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return json.loads(text)
