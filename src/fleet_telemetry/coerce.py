"""Defensive coercion of loosely-typed provider values."""

import math
from typing import Any


def coerce_float(value: Any) -> float | None:
    """Parse numbers and numeric strings; ``None`` for anything else.

    Strings may carry surrounding whitespace and ``,`` thousands
    separators. Booleans, blanks, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(result):
        return None
    return result


def coerce_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None
