"""Request validation and answer comparison helpers."""

from __future__ import annotations

import math
from typing import Any

from src.core.errors import InvalidArgumentError

def require_fields(**fields: Any) -> None:
    """
    Reject missing or blank required fields.

    Raises:
        InvalidArgumentError: Listing every missing field by name
    """
    missing = [
        name
        for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise InvalidArgumentError(f"Missing required fields: {', '.join(missing)}")


def is_number(value: Any) -> bool:
    """True for finite ints and floats. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def require_positive_number(name: str, value: Any) -> None:
    if not is_number(value) or value <= 0:
        raise InvalidArgumentError(f"Invalid {name}. Must be a positive number.")


def require_non_negative_number(name: str, value: Any) -> None:
    if not is_number(value) or value < 0:
        raise InvalidArgumentError(f"Invalid {name}. Must be a non-negative number.")


def answers_match(submitted: Any, expected: Any) -> bool:
    """
    Structural equality between a submitted answer and the stored key.

    Strings compare exactly (no trimming, no case folding). Numbers compare
    by value, booleans only with booleans. Lists compare element-wise in
    order; dicts by keys and values.
    """
    if isinstance(submitted, bool) or isinstance(expected, bool):
        return isinstance(submitted, bool) and isinstance(expected, bool) and submitted == expected
    if is_number(submitted) and is_number(expected):
        return submitted == expected
    if isinstance(submitted, dict) and isinstance(expected, dict):
        return submitted.keys() == expected.keys() and all(
            answers_match(submitted[key], expected[key]) for key in expected
        )
    if isinstance(submitted, (list, tuple)) and isinstance(expected, (list, tuple)):
        return len(submitted) == len(expected) and all(
            answers_match(s, e) for s, e in zip(submitted, expected)
        )
    return type(submitted) is type(expected) and submitted == expected
