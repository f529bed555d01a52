"""
Differential Privacy for the Simple-Average Mode

Implements the Laplace mechanism used to perturb per-site ROI averages
before they leave the site.

The scale of the noise is calibrated to the sensitivity of an average over
``n`` samples bounded by the ROI's ``[min, max]`` range:

    sensitivity = (max - min) / n
    scale       = sensitivity / epsilon

References:
    - Dwork et al., "Calibrating Noise to Sensitivity in Private Data
      Analysis" (2006)
    - https://en.wikipedia.org/wiki/Laplace_distribution
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from fedridge.errors import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class RegionOfInterest:
    """Named ROI with the bounds of its possible values."""

    key: str
    min: float
    max: float

    def __post_init__(self) -> None:
        if self.max < self.min:
            raise ConfigurationError(
                f"ROI {self.key}: max ({self.max}) is below min ({self.min})",
                {"key": self.key, "min": self.min, "max": self.max},
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegionOfInterest":
        """Build from a ``{"key", "min", "max"}`` mapping."""
        try:
            return cls(key=str(data["key"]), min=float(data["min"]), max=float(data["max"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid ROI descriptor: {data!r}", {"roi": data}) from e


# =============================================================================
# Laplace Mechanism
# =============================================================================


def calculate_sensitivity(roi: RegionOfInterest, sample_size: int) -> float:
    """
    Sensitivity of the average of an ROI over ``sample_size`` samples.

    Raises:
        ConfigurationError: If ``sample_size`` is not positive
    """
    if sample_size <= 0:
        raise ConfigurationError(
            f"Sample size must be positive, got {sample_size}",
            {"sample_size": sample_size},
        )
    return (roi.max - roi.min) / sample_size


def calculate_laplace_scale(roi: RegionOfInterest, sample_size: int, epsilon: float) -> float:
    """
    Scale ``b`` of the Laplace distribution to draw noise from.

    Raises:
        ConfigurationError: If ``epsilon`` or ``sample_size`` is not positive
    """
    if epsilon <= 0:
        raise ConfigurationError(f"Epsilon must be positive, got {epsilon}", {"epsilon": epsilon})
    return calculate_sensitivity(roi, sample_size) / epsilon


def laplace_noise(scale: float, rng: np.random.Generator | None = None) -> float:
    """
    Draw one zero-location Laplace sample by inverse-CDF sampling.

    With ``u ~ Uniform(-0.5, 0.5)``:

        x = -scale * sign(u) * ln(1 - 2|u|)

    A fresh generator seeded from OS entropy is used unless ``rng`` is given.
    """
    generator = rng if rng is not None else np.random.default_rng()

    u = generator.uniform(-0.5, 0.5)
    # u == -0.5 would give ln(0)
    while abs(u) >= 0.5:
        u = generator.uniform(-0.5, 0.5)

    return float(-scale * np.sign(u) * np.log1p(-2.0 * abs(u)))


def add_noise(
    value: float,
    roi: RegionOfInterest,
    sample_size: int,
    epsilon: float,
    rng: np.random.Generator | None = None,
) -> float:
    """
    Add calibrated Laplace noise to an ROI average.

    Args:
        value: Average of the ROI over the site's samples
        roi: ROI descriptor with value bounds
        sample_size: Number of samples the average was computed on
        epsilon: Privacy budget (lower = more private)
        rng: Optional generator, for reproducible tests only

    Returns:
        The value with noise added
    """
    scale = calculate_laplace_scale(roi, sample_size, epsilon)
    noisy = value + laplace_noise(scale, rng)

    logger.debug(f"Added Laplace noise to {roi.key}: scale={scale:.6g}")
    return noisy
