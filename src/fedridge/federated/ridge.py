"""
Ridge regression primitives.

Definitions (w = coefficients, X = predictors, y = response, lam = penalty):

    objective(w) = ||Xw - y||^2 + lam * ||w||^2
    gradient(w)  = 2 X^T (Xw - y) + 2 lam w

The objective is additive across sites, so the global loss of a federated
fit is the sum of the site objectives and the global gradient is the sum of
the site gradients.
"""

import numpy as np


def apply_model(m_vals: np.ndarray, x_vals: np.ndarray) -> np.ndarray:
    """Predicted response for each row of ``x_vals``."""
    return np.asarray(x_vals, dtype=np.float64) @ np.asarray(m_vals, dtype=np.float64)


def objective(
    m_vals: np.ndarray,
    x_vals: np.ndarray,
    y_vals: np.ndarray,
    ridge_lambda: float = 0.0,
) -> float:
    """Sum of squared residuals plus the ridge penalty."""
    w = np.asarray(m_vals, dtype=np.float64)
    residual = apply_model(w, x_vals) - np.asarray(y_vals, dtype=np.float64)
    return float(residual @ residual + ridge_lambda * (w @ w))


def gradient(
    m_vals: np.ndarray,
    x_vals: np.ndarray,
    y_vals: np.ndarray,
    ridge_lambda: float = 0.0,
) -> np.ndarray:
    """Gradient of ``objective`` with respect to the coefficients."""
    w = np.asarray(m_vals, dtype=np.float64)
    x = np.asarray(x_vals, dtype=np.float64)
    residual = x @ w - np.asarray(y_vals, dtype=np.float64)
    return 2.0 * (x.T @ residual) + 2.0 * ridge_lambda * w


def recalculate_m_vals(
    learning_rate: float,
    m_vals: np.ndarray,
    grad: np.ndarray,
) -> np.ndarray:
    """One gradient-descent step."""
    return np.asarray(m_vals, dtype=np.float64) - learning_rate * np.asarray(
        grad, dtype=np.float64
    )


def r_squared(y_vals: np.ndarray, predicted: np.ndarray) -> float:
    """
    Coefficient of determination.

    Returns 0.0 when the response has no variance.
    """
    y = np.asarray(y_vals, dtype=np.float64)
    ss_res = float(np.sum((y - np.asarray(predicted, dtype=np.float64)) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        return 0.0
    return 1.0 - ss_res / ss_tot
