"""
Differentially private simple average of ROI values.

Each site reports the mean of every ROI over its rows, perturbed with Laplace
noise calibrated to the ROI's bounds and the site's sample size. The
aggregator averages the reported means column by column.
"""

import logging
import numbers
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

from fedridge.errors import InputShapeError, MalformedInputError
from fedridge.federated.numeric import column_wise_average, zip_roi_values
from fedridge.federated.privacy import RegionOfInterest, add_noise

logger = logging.getLogger(__name__)


def compute_local_average(
    rows: Any,
    rois: Sequence[RegionOfInterest],
    epsilon: float,
    rng: np.random.Generator | None = None,
    site_id: str | None = None,
) -> dict[str, Any]:
    """
    Noisy per-ROI means of one site's rows.

    Args:
        rows: Matrix with one column per ROI, in ``rois`` order
        rois: ROI descriptors with value bounds
        epsilon: Privacy budget
        rng: Optional generator, for reproducible tests only
        site_id: Included in the payload when given

    Returns:
        ``{"averages": {key: value}, "sample_size": n}`` (plus ``site_id``)

    Raises:
        InputShapeError: If the rows are empty or have the wrong column count
    """
    matrix = np.asarray(rows, dtype=np.float64)
    if matrix.ndim == 1 and len(rois) == 1:
        matrix = matrix.reshape(-1, 1)
    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] != len(rois):
        raise InputShapeError(
            f"Expected a non-empty matrix with {len(rois)} columns, got shape {matrix.shape}",
            {"shape": matrix.shape, "rois": len(rois)},
        )

    sample_size = int(matrix.shape[0])
    means = column_wise_average(matrix)
    noisy = [
        add_noise(float(value), roi, sample_size, epsilon, rng) for value, roi in zip(means, rois)
    ]

    payload: dict[str, Any] = {
        "averages": zip_roi_values(noisy, [roi.key for roi in rois]),
        "sample_size": sample_size,
    }
    if site_id is not None:
        payload["site_id"] = site_id
    return payload


def get_roi_values(
    site_results: Sequence[Mapping[str, Any]],
    roi_keys: Sequence[str],
) -> list[list[float]]:
    """
    Ordered ROI values of every site.

    Raises:
        MalformedInputError: If a site is missing an ROI or reports a
            non-numeric value
    """
    values = []
    for index, result in enumerate(site_results):
        site = result.get("site_id", f"site #{index}")
        averages = result.get("averages")
        if not isinstance(averages, Mapping):
            raise MalformedInputError(f"No averages in {site}'s result", {"site_id": site})

        row = []
        for key in roi_keys:
            if key not in averages:
                raise MalformedInputError(
                    f"ROI '{key}' not found in {site}'s dataset",
                    {"site_id": site, "key": key},
                )
            value = averages[key]
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise MalformedInputError(
                    f"Nonnumeric value for '{key}' in {site}'s data",
                    {"site_id": site, "key": key},
                )
            row.append(float(value))
        values.append(row)

    return values


def compute_remote_average(
    site_results: Sequence[Mapping[str, Any]],
    roi_keys: Sequence[str],
) -> dict[str, float]:
    """
    Column-wise average of the sites' reported ROI means.

    Raises:
        InputShapeError: If there are no site results
        MalformedInputError: If a site result is incomplete
    """
    if not site_results:
        raise InputShapeError("No site results to average")

    averages = zip_roi_values(column_wise_average(get_roi_values(site_results, roi_keys)), roi_keys)
    logger.info(f"Averaged {len(roi_keys)} ROIs across {len(site_results)} sites")
    return averages
