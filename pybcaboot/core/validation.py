"""
Input validation utilities for pybcaboot.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numbers

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from pybcaboot.core.exceptions import (
    ValidationError,
    DimensionError,
    InvalidParameterError,
)


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a floating point numpy array.

    Rejects inputs that result in object dtype (indicating mixed types or
    non-numeric data).

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with floating dtype

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise ValidationError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if not np.issubdtype(result.dtype, np.number) and result.dtype != np.bool_:
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    if not np.issubdtype(result.dtype, np.floating):
        result = result.astype(np.float64)

    return result


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(array: NDArray[np.floating[Any]], ndim: int, name: str) -> None:
    """
    Verify array has exactly the specified number of dimensions.

    Raises:
        DimensionError: If array has wrong number of dimensions
    """
    if array.ndim != ndim:
        raise DimensionError(
            f"{name}: expected {ndim}D array, got {array.ndim}D with shape {array.shape}"
        )


def check_1d(array: NDArray[np.floating[Any]], name: str) -> None:
    """Verify array is 1-dimensional."""
    check_ndim(array, 1, name)


def check_2d(array: NDArray[np.floating[Any]], name: str) -> None:
    """Verify array is 2-dimensional."""
    check_ndim(array, 2, name)


def check_consistent_length(
    *arrays: NDArray[np.floating[Any]],
    names: tuple[str, ...]
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Args:
        *arrays: Arrays to check
        names: Parameter names for error messages (must match number of arrays)

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_min_samples(array: NDArray[np.floating[Any]], min_samples: int, name: str) -> None:
    """
    Verify array has at least the minimum number of samples.

    Raises:
        InvalidParameterError: If array has fewer than min_samples rows
    """
    n = array.shape[0]
    if n < min_samples:
        raise InvalidParameterError(
            f"{name}: requires at least {min_samples} samples, got {n}",
            name=name,
            value=n,
        )


def check_positive_int(value: Any, minimum: int, name: str) -> int:
    """
    Verify value is an integer no smaller than ``minimum``.

    Booleans are rejected even though they subclass int.

    Returns:
        The value as a plain int

    Raises:
        InvalidParameterError: If value is not an integer or is too small
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameterError(
            f"{name}: expected an integer, got {type(value).__name__}",
            name=name,
            value=value,
        )
    if value < minimum:
        raise InvalidParameterError(
            f"{name} must be >= {minimum}, got {value}",
            name=name,
            value=value,
        )
    return int(value)


def check_alpha(alpha: ArrayLike, name: str = 'alpha') -> NDArray[np.floating[Any]]:
    """
    Validate a set of coverage levels.

    Every level must lie strictly inside (0, 1). Duplicates are removed and
    the result is sorted ascending.

    Returns:
        Sorted unique 1D array of levels

    Raises:
        InvalidParameterError: If any level is outside (0, 1) or the set is empty
    """
    arr = np.atleast_1d(check_array(alpha, name)).ravel()
    if arr.size == 0:
        raise InvalidParameterError(f"{name}: at least one level required", name=name)
    bad = arr[~((arr > 0.0) & (arr < 1.0))]
    if bad.size > 0:
        raise InvalidParameterError(
            f"{name}: levels must be in (0, 1), got {bad.tolist()}",
            name=name,
            value=bad.tolist(),
        )
    return np.unique(arr)
