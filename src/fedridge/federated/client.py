"""
Local (Site) Computation for Decentralized Ridge Regression

Each participating site fits the shared coefficient vector against its own
predictor/response data and reports only a gradient, an objective value and
an r^2. Raw rows never leave the site.

Usage:
    site = LocalSite("site_a", x_rows, y_rows, config)
    result = site.run_round(state.m_vals)
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import numpy as np

from fedridge.config.loader import ensure_run_config
from fedridge.config.schema import RunConfig
from fedridge.errors import ConfigurationError, InputShapeError
from fedridge.federated import ridge
from fedridge.federated.average import compute_local_average
from fedridge.federated.numeric import normalize, unzip_roi_values, zip_roi_values
from fedridge.federated.privacy import RegionOfInterest
from fedridge.federated.state import LocalResult

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class LocalRequest:
    """Inputs of one site for one round."""

    current_model_vector: Mapping[str, float] | None
    predictor_rows: Any
    response_rows: Any
    prior_round_echo: LocalResult | Mapping[str, Any] | None = None
    site_id: str | None = None


@dataclass
class SiteState:
    """Bookkeeping of an in-process site."""

    status: str = "idle"  # idle, computed, skipped, error
    rounds_participated: int = 0
    rounds_skipped: int = 0
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status,
            "rounds_participated": self.rounds_participated,
            "rounds_skipped": self.rounds_skipped,
            "last_update": self.last_update.isoformat(),
            "error_message": self.error_message,
        }


# =============================================================================
# Input Validation
# =============================================================================


def _as_predictors(x_vals: Any, num_keys: int) -> np.ndarray:
    x = np.asarray(x_vals, dtype=np.float64)
    if x.ndim == 1 and num_keys == 1:
        x = x.reshape(-1, 1)

    if x.ndim != 2 or x.shape[0] == 0:
        raise InputShapeError(
            f"Predictors must be a non-empty matrix, got shape {x.shape}",
            {"shape": x.shape},
        )
    if x.shape[1] != num_keys:
        raise InputShapeError(
            f"Predictors have {x.shape[1]} columns for {num_keys} ROI keys",
            {"columns": x.shape[1], "keys": num_keys},
        )
    if not np.isfinite(x).all():
        raise InputShapeError("Predictors contain non-finite values")
    return x


def _as_response(y_vals: Any) -> np.ndarray:
    y = np.asarray(y_vals, dtype=np.float64)
    if y.ndim == 2 and y.shape[1] == 1:
        y = y.ravel()

    if y.ndim != 1 or y.shape[0] == 0:
        raise InputShapeError(
            f"Response must be a non-empty vector or single column, got shape {y.shape}",
            {"shape": y.shape},
        )
    if not np.isfinite(y).all():
        raise InputShapeError("Response contains non-finite values")
    return y


# =============================================================================
# Local Regression Step
# =============================================================================


def compute_regression(
    x_vals: Any,
    y_vals: Any,
    aggregate_m_vals: Mapping[str, float],
    roi_keys: Sequence[str],
    ridge_lambda: float = 0.0,
    normalization: str = "zscore",
    site_id: str | None = None,
) -> LocalResult:
    """
    Compute one site's regression statistics against the shared model.

    Predictors and response are normalized independently, then the ridge
    gradient and objective are evaluated at ``aggregate_m_vals`` and r^2 is
    computed from the normalized response and the model's predictions.

    Args:
        x_vals: Predictor rows, one column per ROI key
        y_vals: Response rows (vector or single column)
        aggregate_m_vals: Current model coefficients keyed by ROI
        roi_keys: Ordered ROI keys of the run
        ridge_lambda: Ridge penalty
        normalization: Normalization strategy name
        site_id: Optional identifier echoed in the result

    Returns:
        LocalResult echoing ``aggregate_m_vals`` as the sync token

    Raises:
        InputShapeError: If the rows are empty or misaligned
        MissingKeyError: If the model vector's keys differ from ``roi_keys``
    """
    x = _as_predictors(x_vals, len(roi_keys))
    y = _as_response(y_vals)

    if x.shape[0] != y.shape[0]:
        raise InputShapeError(
            f"Predictors have {x.shape[0]} rows but response has {y.shape[0]}",
            {"predictor_rows": x.shape[0], "response_rows": y.shape[0]},
        )

    m_vals = np.asarray(unzip_roi_values(aggregate_m_vals, roi_keys), dtype=np.float64)

    normalized_x = normalize(x, normalization)
    normalized_y = normalize(y, normalization)

    grad = ridge.gradient(m_vals, normalized_x, normalized_y, ridge_lambda)
    objective = ridge.objective(m_vals, normalized_x, normalized_y, ridge_lambda)
    predicted_y = ridge.apply_model(m_vals, normalized_x)
    r2 = ridge.r_squared(normalized_y, predicted_y)

    logger.debug(
        f"Local regression{f' at {site_id}' if site_id else ''}: "
        f"{x.shape[0]} rows, objective={objective:.6g}, r2={r2:.4f}"
    )

    return LocalResult(
        gradient=zip_roi_values(grad, roi_keys),
        objective=objective,
        r2=r2,
        previous_aggregate_m_vals=dict(aggregate_m_vals),
        site_id=site_id,
    )


def local_step(
    request: LocalRequest,
    config: RunConfig | Mapping[str, Any],
) -> LocalResult | None:
    """
    Round entry point for one site.

    Returns None (no-op) when no model is available yet, or when the prior
    round's echo shows the model has not changed since it was last computed.

    Raises:
        ConfigurationError: If ``config`` is invalid
        InputShapeError: If the site's rows are empty or misaligned
    """
    run_config = ensure_run_config(config)

    if not request.current_model_vector:
        logger.debug("No model available yet, skipping local step")
        return None

    if request.prior_round_echo is not None:
        echo = LocalResult.parse(request.prior_round_echo)
        if echo.previous_aggregate_m_vals == dict(request.current_model_vector):
            logger.debug("Model unchanged since last computation, skipping local step")
            return None

    return compute_regression(
        request.predictor_rows,
        request.response_rows,
        request.current_model_vector,
        run_config.roi_keys,
        ridge_lambda=run_config.ridge_lambda,
        normalization=run_config.normalization.value,
        site_id=request.site_id,
    )


# =============================================================================
# In-Process Site
# =============================================================================


class LocalSite:
    """
    A participant holding private data, for in-process simulation.

    The site remembers its last result so that a repeated broadcast of an
    unchanged model is answered with a no-op.

    Example:
        site = LocalSite("site_a", x_rows, y_rows, config)
        result = site.run_round(state.m_vals)
    """

    def __init__(
        self,
        site_id: str,
        predictor_rows: Any,
        response_rows: Any,
        config: RunConfig | Mapping[str, Any],
    ):
        """
        Initialize a site.

        Args:
            site_id: Unique identifier of this site
            predictor_rows: Matrix with one column per ROI key
            response_rows: Response vector aligned with the predictor rows
            config: Run configuration shared with the aggregator
        """
        self.site_id = site_id
        self.config = ensure_run_config(config)
        self.predictor_rows = np.asarray(predictor_rows, dtype=np.float64)
        self.response_rows = np.asarray(response_rows, dtype=np.float64)
        self.state = SiteState()
        self._last_result: LocalResult | None = None

        logger.info(f"Initialized site {site_id}: {len(self.predictor_rows)} rows")

    @property
    def num_samples(self) -> int:
        """Number of rows held by the site."""
        return int(self.predictor_rows.shape[0])

    @property
    def last_result(self) -> LocalResult | None:
        """Result of the most recent computed round."""
        return self._last_result

    def run_round(self, current_model_vector: Mapping[str, float] | None) -> LocalResult | None:
        """
        Compute this site's contribution for the broadcast model.

        Returns None when there is nothing new to compute.
        """
        request = LocalRequest(
            current_model_vector=current_model_vector,
            predictor_rows=self.predictor_rows,
            response_rows=self.response_rows,
            prior_round_echo=self._last_result,
            site_id=self.site_id,
        )

        try:
            result = local_step(request, self.config)
        except InputShapeError as e:
            self.state.status = "error"
            self.state.error_message = str(e)
            logger.error(f"Site {self.site_id} failed: {e}")
            raise

        self.state.last_update = datetime.now(timezone.utc)
        if result is None:
            self.state.status = "skipped"
            self.state.rounds_skipped += 1
            return None

        self._last_result = result
        self.state.status = "computed"
        self.state.rounds_participated += 1
        self.state.error_message = None
        return result

    def compute_average(
        self,
        rois: Sequence[RegionOfInterest],
        rng: np.random.Generator | None = None,
    ) -> dict[str, Any]:
        """Noisy per-ROI averages of this site's predictor columns."""
        if self.config.epsilon is None:
            raise ConfigurationError("epsilon is required for the noisy average mode")
        return compute_local_average(
            self.predictor_rows,
            rois,
            self.config.epsilon,
            rng=rng,
            site_id=self.site_id,
        )

    def get_state(self) -> dict[str, Any]:
        """Get current site state."""
        return {
            "site_id": self.site_id,
            "num_samples": self.num_samples,
            **self.state.to_dict(),
        }
