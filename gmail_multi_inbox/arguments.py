"""
Normalization of loosely typed tool arguments.
"""

import math
from typing import Any, Iterable, List

from .exceptions import ValidationError


def value_to_string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def value_to_boolean(value: Any, fallback: bool = False) -> bool:
    return value if isinstance(value, bool) else fallback


def value_to_number(value: Any, fallback: float) -> float:
    # bool is an int subclass; a flag is not a count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if isinstance(value, int):
        return value
    if not math.isfinite(value):
        return fallback
    return value


def sanitize_strings(values: Iterable[Any]) -> List[str]:
    """Stringify, trim, drop empties and de-duplicate, keeping first-seen order."""
    seen = set()
    result = []
    for item in values:
        text = str(item).strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def value_to_string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return sanitize_strings(value)


def require_string(value: Any, name: str) -> str:
    """Return a non-blank string argument or raise ValidationError."""
    text = value_to_string(value).strip()
    if not text:
        raise ValidationError(f"{name} is required.")
    return text


def require_string_list(value: Any, name: str) -> List[str]:
    items = value_to_string_list(value)
    if not items:
        raise ValidationError(f"{name} must include at least one value.")
    return items
