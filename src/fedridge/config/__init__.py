"""
YAML Configuration System for fedridge.

This package provides Pydantic-based YAML configuration for:
- Algorithm constants shared by local and remote steps
- Simulated sites and their data sources
- ROI bounds for the noisy average mode
"""

from fedridge.config.loader import (
    ConfigLoader,
    ensure_run_config,
    load_run_config,
    load_simulation_config,
)
from fedridge.config.schema import (
    NormalizationType,
    OutputConfig,
    RoiBoundsConfig,
    RunConfig,
    SimulationConfig,
    SiteConfig,
)

__all__ = [
    # Schema - Enums
    "NormalizationType",
    # Schema - Models
    "OutputConfig",
    "RoiBoundsConfig",
    "RunConfig",
    "SimulationConfig",
    "SiteConfig",
    # Loader
    "ConfigLoader",
    "ensure_run_config",
    "load_run_config",
    "load_simulation_config",
]
