"""
Site Data Sources

Loads a site's predictor/response rows from CSV, or generates a synthetic
linear dataset for simulations.

Usage:
    from fedridge.data import generate_synthetic_site, load_site_data

    x_rows, y_rows = load_site_data("site_a.csv", ["Left-Hippocampus"])
    x_rows, y_rows = generate_synthetic_site([0.8], num_samples=100, seed=1)
"""

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd

from fedridge.errors import InputShapeError

logger = logging.getLogger(__name__)


def load_site_data(
    path: str | Path,
    roi_keys: Sequence[str],
    response_column: str = "response",
) -> tuple[np.ndarray, np.ndarray]:
    """
    Load one site's rows from a CSV file.

    The file needs a header with one column per ROI key plus the response
    column. Other columns are ignored; rows with missing values are dropped.

    Returns:
        Predictor matrix (ROI key order) and response vector

    Raises:
        FileNotFoundError: If the file does not exist
        InputShapeError: If columns are missing or no complete rows remain
    """
    data_path = Path(path)
    if not data_path.exists():
        raise FileNotFoundError(f"Site data not found: {data_path}")

    df = pd.read_csv(data_path)

    missing = [col for col in [*roi_keys, response_column] if col not in df.columns]
    if missing:
        raise InputShapeError(
            f"{data_path.name} is missing columns: {missing}",
            {"path": str(data_path), "missing": missing},
        )

    df = df[[*roi_keys, response_column]].apply(pd.to_numeric, errors="coerce")
    complete = df.dropna()
    if len(complete) < len(df):
        logger.warning(f"{data_path.name}: dropped {len(df) - len(complete)} incomplete rows")
    if complete.empty:
        raise InputShapeError(f"{data_path.name} has no complete rows", {"path": str(data_path)})

    logger.info(f"Loaded {len(complete)} rows from {data_path}")
    return (
        complete[list(roi_keys)].to_numpy(dtype=np.float64),
        complete[response_column].to_numpy(dtype=np.float64),
    )


def generate_synthetic_site(
    coefficients: Sequence[float],
    num_samples: int = 100,
    noise_std: float = 0.1,
    seed: int | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Generate rows following ``y = X @ coefficients + noise``.

    Predictors are drawn around site-specific offsets so that sites differ
    in scale, which normalization must remove.
    """
    rng = np.random.default_rng(seed)
    num_features = len(coefficients)

    offsets = rng.uniform(-2.0, 2.0, num_features)
    scales = rng.uniform(0.5, 2.0, num_features)
    x_rows = rng.standard_normal((num_samples, num_features)) * scales + offsets
    y_rows = x_rows @ np.asarray(coefficients, dtype=np.float64)
    y_rows = y_rows + rng.normal(0.0, noise_std, num_samples)

    return x_rows, y_rows
