"""
Pydantic Schema for Run Configuration.

Provides type-safe configuration models for decentralized ridge-regression
runs. The algorithm constants (learning rate, iteration cap, tolerance, ROI
keys) are always supplied by the caller and never defaulted.

Usage:
    from fedridge.config import RunConfig, load_simulation_config

    config = load_simulation_config("simulation.yaml")
    print(config.run.roi_keys)
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from fedridge.federated.privacy import RegionOfInterest


# =============================================================================
# Enums
# =============================================================================


class NormalizationType(str, Enum):
    """Supported normalization strategies."""

    ZSCORE = "zscore"
    MINMAX = "minmax"


# =============================================================================
# Base Configuration
# =============================================================================


class BaseConfig(BaseModel):
    """Base configuration with common settings."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        default="unnamed",
        description="Configuration name for identification",
        min_length=1,
        max_length=100,
    )
    description: str | None = Field(
        default=None,
        description="Optional description of the configuration",
    )
    version: str = Field(
        default="1.0.0",
        description="Configuration schema version",
        pattern=r"^\d+\.\d+\.\d+$",
    )


# =============================================================================
# Run Configuration
# =============================================================================


class RunConfig(BaseModel):
    """Algorithm constants shared by the local and remote computations."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    initial_learning_rate: float = Field(
        ...,
        description="Learning rate of the seeded model",
        gt=0.0,
    )
    max_iterations: int = Field(
        ...,
        description="Iteration cap after which the run is exhausted",
        gt=0,
    )
    tolerance: float = Field(
        ...,
        description="Aggregate gradient l2 norm below which the run has converged",
        gt=0.0,
    )
    roi_keys: tuple[str, ...] = Field(
        ...,
        description="Ordered ROI keys, fixed for the entire run",
        min_length=1,
    )
    epsilon: float | None = Field(
        default=None,
        description="Privacy budget for the noisy average mode",
        gt=0.0,
    )
    ridge_lambda: float = Field(
        default=0.0,
        description="Ridge penalty applied to the coefficients",
        ge=0.0,
    )
    normalization: NormalizationType = Field(
        default=NormalizationType.ZSCORE,
        description="Normalization applied to site data before fitting",
    )
    expected_sites: tuple[str, ...] | None = Field(
        default=None,
        description="Site ids that must all report before a round is aggregated",
    )

    @field_validator("roi_keys")
    @classmethod
    def validate_roi_keys(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """ROI keys must be non-blank and unique."""
        if any(not key.strip() for key in v):
            raise ValueError("ROI keys must not be blank")
        if len(set(v)) != len(v):
            raise ValueError("ROI keys must be unique")
        return v

    @field_validator("expected_sites")
    @classmethod
    def validate_expected_sites(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        """Expected sites, when given, must be a non-empty unique list."""
        if v is None:
            return v
        if not v:
            raise ValueError("expected_sites must not be empty when given")
        if len(set(v)) != len(v):
            raise ValueError("expected_sites must be unique")
        return v


# =============================================================================
# Simulation Configuration
# =============================================================================


class RoiBoundsConfig(BaseModel):
    """Value bounds of one ROI, used to calibrate privacy noise."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(..., description="ROI key", min_length=1)
    min: float = Field(..., description="Smallest possible value")
    max: float = Field(..., description="Largest possible value")

    @model_validator(mode="after")
    def validate_bounds(self) -> "RoiBoundsConfig":
        """Max must not be below min."""
        if self.max < self.min:
            raise ValueError(f"max ({self.max}) must not be below min ({self.min})")
        return self

    def to_region(self) -> RegionOfInterest:
        """Convert to the runtime ROI descriptor."""
        from fedridge.federated.privacy import RegionOfInterest

        return RegionOfInterest(key=self.key, min=self.min, max=self.max)


class SiteConfig(BaseModel):
    """One simulated participant."""

    model_config = ConfigDict(extra="forbid")

    site_id: str = Field(..., description="Unique site identifier", min_length=1)
    data_path: str | None = Field(
        default=None,
        description="CSV file with one column per ROI plus the response column",
    )
    response_column: str = Field(
        default="response",
        description="Name of the response column in the CSV file",
        min_length=1,
    )
    num_samples: int = Field(
        default=100,
        description="Number of rows to generate when no data file is given",
        ge=2,
        le=1_000_000,
    )
    noise_std: float = Field(
        default=0.1,
        description="Response noise of generated data",
        ge=0.0,
    )


class OutputConfig(BaseModel):
    """Configuration for output and logging."""

    model_config = ConfigDict(extra="forbid")

    output_path: str | None = Field(
        default=None,
        description="JSON file receiving the final state and history",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )


class SimulationConfig(BaseConfig):
    """Complete in-process simulation of a federated run."""

    seed: int = Field(
        default=42,
        description="Random seed for generated site data",
        ge=0,
    )
    true_coefficients: list[float] | None = Field(
        default=None,
        description="Coefficients used to generate synthetic responses",
    )
    run: RunConfig = Field(
        ...,
        description="Algorithm constants",
    )
    sites: list[SiteConfig] = Field(
        ...,
        description="Participating sites",
        min_length=1,
    )
    rois: list[RoiBoundsConfig] = Field(
        default_factory=list,
        description="ROI bounds for the noisy average mode",
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig,
        description="Output configuration",
    )

    @model_validator(mode="after")
    def validate_simulation(self) -> "SimulationConfig":
        """Cross-field checks between sites, ROIs and run constants."""
        site_ids = [site.site_id for site in self.sites]
        if len(set(site_ids)) != len(site_ids):
            raise ValueError("site_id values must be unique")

        if self.run.expected_sites is not None:
            unknown = sorted(set(self.run.expected_sites) - set(site_ids))
            if unknown:
                raise ValueError(f"expected_sites not configured as sites: {unknown}")

        if self.rois:
            roi_keys = [roi.key for roi in self.rois]
            if roi_keys != list(self.run.roi_keys):
                raise ValueError("rois must list the run's roi_keys in the same order")

        if self.true_coefficients is not None and len(self.true_coefficients) != len(
            self.run.roi_keys
        ):
            raise ValueError("true_coefficients must have one value per ROI key")

        return self

    def resolve_data_paths(self, base_dir: Path) -> "SimulationConfig":
        """Return a copy with relative site data paths resolved against ``base_dir``."""
        sites = [
            site.model_copy(update={"data_path": str(base_dir / site.data_path)})
            if site.data_path and not Path(site.data_path).is_absolute()
            else site
            for site in self.sites
        ]
        return self.model_copy(update={"sites": sites})
