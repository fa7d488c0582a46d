"""
Validation decorators for gsprune filter entry points.

Provides reusable parameter checking for the range filter, the outlier
classifier and the spatial index builder. All checks raise
InvalidParameterError before the wrapped function runs, so a rejected call
never mutates anything.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from functools import wraps
from numbers import Real
from typing import Any

from gsprune.exceptions import InvalidParameterError

F = Callable[..., Any]


def _lookup(args: tuple, kwargs: dict, param_name: str, param_index: int) -> tuple[bool, Any]:
    if len(args) > param_index:
        return True, args[param_index]
    if param_name in kwargs:
        return True, kwargs[param_name]
    return False, None


def check_finite(value: Any, param_name: str) -> float:
    """
    Ensure value is a finite real number.

    Args:
        value: Value to check
        param_name: Name of parameter for error messages

    Returns:
        The value as float

    Raises:
        InvalidParameterError: If value is not a real number or not finite
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidParameterError(
            f"{param_name} must be a number, got {type(value).__name__}. "
            f"Provide a numeric value (int or float)."
        )
    value = float(value)
    if not math.isfinite(value):
        raise InvalidParameterError(f"{param_name}={value} must be finite.")
    return value


def check_range(value: Any, min_val: float, max_val: float, param_name: str) -> float:
    """
    Ensure value is finite and inside [min_val, max_val].

    Raises:
        InvalidParameterError: If value is outside the range
    """
    value = check_finite(value, param_name)
    if not min_val <= value <= max_val:
        suggestion = ""
        if "opacity" in param_name:
            suggestion = " Use 0.0 to disable the opacity test, 1.0 to keep only fully opaque points."
        elif param_name == "k":
            suggestion = " k is the minimum neighbor count, use 1 or more."
        raise InvalidParameterError(
            f"{param_name}={value} is outside valid range [{min_val}, {max_val}].{suggestion}"
        )
    return value


def check_positive(value: Any, param_name: str) -> float:
    """
    Ensure value is finite and strictly positive.

    Raises:
        InvalidParameterError: If value <= 0
    """
    value = check_finite(value, param_name)
    if value <= 0:
        suggestion = ""
        if "radius" in param_name:
            suggestion = " The radius is also the grid cell size and must be > 0."
        raise InvalidParameterError(f"{param_name}={value} must be positive (> 0).{suggestion}")
    return value


def validate_range(
    min_val: float,
    max_val: float,
    param_name: str = "value",
    param_index: int = 1,
) -> Callable[[F], F]:
    """
    Decorator for validating numeric parameter ranges.

    Args:
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)
        param_name: Name of parameter for error messages
        param_index: Position of parameter in function signature

    Returns:
        Decorated function with range validation

    Example:
        >>> @validate_range(1, math.inf, "k", 2)
        ... def classify_outliers(positions, state, k, radius):
        ...     ...
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            found, value = _lookup(args, kwargs, param_name, param_index)
            if found:
                check_range(value, min_val, max_val, param_name)
            return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


def validate_positive(param_name: str = "value", param_index: int = 1) -> Callable[[F], F]:
    """
    Decorator for validating positive numeric parameters.

    Args:
        param_name: Name of parameter for error messages
        param_index: Position of parameter in function signature

    Returns:
        Decorated function with positive validation

    Example:
        >>> @validate_positive("radius", 2)
        ... def build_spatial_grid(positions, state, radius):
        ...     ...
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            found, value = _lookup(args, kwargs, param_name, param_index)
            if found:
                check_positive(value, param_name)
            return func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator
