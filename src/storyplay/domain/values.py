"""Value coercion helpers shared by conditions, operations and manual edits."""
from __future__ import annotations

import math

from storyplay.core.types import VariableKind, VariableValue

_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})


def to_number(value: object) -> float | None:
    """Return ``value`` as a finite float, or None when it is not numeric."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def to_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def to_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return "" if value is None else str(value)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


def coerce_value(kind: VariableKind, value: object) -> VariableValue | None:
    """Convert ``value`` to the representation used for ``kind``; None if impossible."""
    if kind == "boolean":
        return to_bool(value)
    if kind == "string":
        return to_text(value)
    number = to_number(value)
    if number is None:
        return None
    if kind == "integer":
        return round_half_up(number)
    return number
