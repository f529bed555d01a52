"""
Numeric primitives shared by the local and remote computations.

Vectors and matrices are plain numpy arrays. Keyed vectors (ROI key -> value)
are dictionaries whose ordering is always taken from the run's ordered ROI
keys, never from the dictionary itself.
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

import numpy as np

from fedridge.errors import ConfigurationError, InputShapeError, MissingKeyError

logger = logging.getLogger(__name__)


# =============================================================================
# Normalization
# =============================================================================


def _zscore(values: np.ndarray) -> np.ndarray:
    mean = values.mean(axis=0)
    std = values.std(axis=0)
    # Zero-variance columns are only centered
    std = np.where(std == 0, 1.0, std)
    return (values - mean) / std


def _minmax(values: np.ndarray) -> np.ndarray:
    low = values.min(axis=0)
    span = values.max(axis=0) - low
    scaled = (values - low) / np.where(span == 0, 1.0, span)
    return np.where(span == 0, 0.0, scaled)


NORMALIZERS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "zscore": _zscore,
    "minmax": _minmax,
}


def normalize(values: Any, strategy: str = "zscore") -> np.ndarray:
    """
    Normalize a vector or matrix.

    A 1-D vector is normalized as a whole; a 2-D matrix column by column.
    The default strategy is zero-mean/unit-variance. Additional strategies
    can be registered in ``NORMALIZERS``.

    Args:
        values: Vector or matrix of numbers
        strategy: Name of a registered normalizer

    Returns:
        Array of the same shape as ``values``

    Raises:
        ConfigurationError: If the strategy is unknown
        InputShapeError: If ``values`` is empty or has more than two dimensions
    """
    if strategy not in NORMALIZERS:
        raise ConfigurationError(
            f"Unknown normalization strategy: {strategy}. Choose from {list(NORMALIZERS)}",
            {"strategy": strategy},
        )

    array = np.asarray(values, dtype=np.float64)
    if array.size == 0:
        raise InputShapeError("Cannot normalize an empty array")
    if array.ndim > 2:
        raise InputShapeError(
            f"Expected a vector or matrix, got {array.ndim} dimensions",
            {"shape": array.shape},
        )

    return NORMALIZERS[strategy](array)


# =============================================================================
# Reductions
# =============================================================================


def _as_matrix(matrix: Any) -> np.ndarray:
    array = np.asarray(matrix, dtype=np.float64)
    if array.ndim != 2 or array.shape[0] == 0:
        raise InputShapeError(
            f"Expected a non-empty 2-D matrix, got shape {array.shape}",
            {"shape": array.shape},
        )
    return array


def column_wise_sum(matrix: Any) -> np.ndarray:
    """Sum each column of a matrix."""
    return _as_matrix(matrix).sum(axis=0)


def column_wise_average(matrix: Any) -> np.ndarray:
    """Average each column of a matrix."""
    return _as_matrix(matrix).mean(axis=0)


def l2_norm(vector: Any) -> float:
    """Euclidean norm of a vector."""
    return float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))


def _flatten(values: Iterable[Any]) -> Iterable[float]:
    for value in values:
        if isinstance(value, (list, tuple, np.ndarray)):
            yield from _flatten(value)
        else:
            yield value


def total(values: Iterable[Any]) -> float:
    """Sum of all numbers in a possibly nested sequence."""
    return float(sum(_flatten(values)))


def mean(values: Sequence[Any]) -> float:
    """
    Mean of a sequence.

    Nested entries are flattened for the sum but the divisor is the length of
    the outer sequence. An empty sequence has a mean of 0.
    """
    if not len(values):
        return 0.0
    return total(values) / len(values)


# =============================================================================
# Keyed vectors
# =============================================================================


def zip_roi_values(values: Sequence[Any], roi_keys: Sequence[str]) -> dict[str, Any]:
    """
    Combine ordered values with their ROI keys.

    Raises:
        MissingKeyError: If the number of values and keys differ
    """
    if len(values) != len(roi_keys):
        raise MissingKeyError(
            f"Got {len(values)} values for {len(roi_keys)} ROI keys",
            {"values": len(values), "keys": len(roi_keys)},
        )
    return {key: _scalar(value) for key, value in zip(roi_keys, values)}


def unzip_roi_values(mapping: Mapping[str, Any], roi_keys: Sequence[str]) -> list[Any]:
    """
    Extract values from a keyed mapping in ROI key order.

    Raises:
        MissingKeyError: If the mapping's keys are not exactly ``roi_keys``
    """
    missing = [key for key in roi_keys if key not in mapping]
    extra = [key for key in mapping if key not in roi_keys]
    if missing or extra:
        raise MissingKeyError(
            f"ROI keys do not match: missing={missing}, unexpected={extra}",
            {"missing": missing, "unexpected": extra},
        )
    return [mapping[key] for key in roi_keys]


def pick_ordered_values(
    order: Sequence[str],
    values: Mapping[str, Any],
    strict: bool = False,
) -> list[Any]:
    """
    Pick values in the given key order.

    Example:
        pick_ordered_values(["wat", "silly"], {"silly": 100, "thing": 200, "wat": 300})
        # -> [300, 100]

    Missing keys yield None unless ``strict`` is set, in which case they raise
    MissingKeyError. Extra keys in ``values`` are ignored.
    """
    if isinstance(order, str) or not isinstance(order, Sequence):
        raise TypeError("Expected order to be a sequence of keys")
    if not isinstance(values, Mapping):
        raise TypeError("Expected values to be a mapping")

    if strict:
        missing = [key for key in order if key not in values]
        if missing:
            raise MissingKeyError(f"Values missing keys {missing}", {"missing": missing})

    return [values.get(key) for key in order]


def _scalar(value: Any) -> Any:
    # numpy scalars would otherwise leak into wire payloads
    if isinstance(value, np.generic):
        return value.item()
    return value
