"""
Input validation utilities for pycure.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numbers
from typing import Any

import numpy as np

from pycure.core.exceptions import ValidationError


def check_probability(value: Any, name: str) -> float:
    """
    Verify a scalar lies strictly inside (0, 1).

    Returns:
        The value as float

    Raises:
        ValidationError: If value is not a real number in (0, 1)
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{name}: expected a real number, got {value!r}")
    value = float(value)
    if not 0.0 < value < 1.0:
        raise ValidationError(f"{name}: must be in (0, 1), got {value}")
    return value


def check_non_negative_int(value: Any, name: str) -> int:
    """
    Verify a scalar is an integer >= 0.

    Returns:
        The value as int

    Raises:
        ValidationError: If value is not a non-negative integer
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValidationError(f"{name}: expected an integer, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name}: must be >= 0, got {value}")
    return int(value)


def check_positive(value: Any, name: str) -> float:
    """
    Verify a scalar is a finite real number > 0.

    Raises:
        ValidationError: If value is not positive
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{name}: expected a real number, got {value!r}")
    value = float(value)
    if not np.isfinite(value) or value <= 0.0:
        raise ValidationError(f"{name}: must be a finite number > 0, got {value}")
    return value
