"""
YAML Configuration Loader.

Provides utilities for loading, validating, and managing YAML configurations
with Pydantic models for type safety. Every loading or validation failure is
raised as ``ConfigurationError``, which aborts the run.

Usage:
    from fedridge.config import load_simulation_config

    config = load_simulation_config("simulation.yaml")
    print(f"Simulating {len(config.sites)} sites")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from fedridge.config.schema import RunConfig, SimulationConfig
from fedridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _format_validation_errors(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        loc = " -> ".join(str(x) for x in item["loc"])
        lines.append(f"  {loc}: {item['msg']}")
    return "\n".join(lines)


class ConfigLoader:
    """
    YAML Configuration Loader with validation.

    Provides methods for loading and validating configuration files
    with helpful error messages and template generation.
    """

    def __init__(self, config_dir: str | Path | None = None) -> None:
        """
        Initialize the config loader.

        Args:
            config_dir: Default directory for configuration files
        """
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()

    def load_yaml(self, path: str | Path) -> dict[str, Any]:
        """
        Load raw YAML file.

        Args:
            path: Path to YAML file

        Returns:
            Dictionary with parsed YAML content

        Raises:
            ConfigurationError: If file not found or YAML parsing fails
        """
        file_path = self._resolve_path(path)

        if not file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {file_path}",
                {"path": str(file_path)},
            )

        try:
            with open(file_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML file: {e}",
                {"path": str(file_path), "error": str(e)},
            ) from e

        if data is None:
            return {}

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"YAML file must contain a dictionary, got {type(data).__name__}",
                {"path": str(file_path)},
            )

        logger.debug(f"Loaded YAML from {file_path}")
        return data

    def load_run(self, path: str | Path) -> RunConfig:
        """
        Load and validate a bare run configuration.

        Raises:
            ConfigurationError: If validation fails
        """
        data = self.load_yaml(path)
        return self._validate_model(RunConfig, data, path)

    def load_simulation(self, path: str | Path) -> SimulationConfig:
        """
        Load and validate a simulation configuration.

        Relative site data paths are resolved against the directory of the
        configuration file.

        Raises:
            ConfigurationError: If validation fails
        """
        data = self.load_yaml(path)
        config = self._validate_model(SimulationConfig, data, path)
        return config.resolve_data_paths(self._resolve_path(path).parent)

    def _resolve_path(self, path: str | Path) -> Path:
        """Resolve path relative to config_dir if not absolute."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self.config_dir / p

    def _validate_model(
        self,
        model_class: type[T],
        data: dict[str, Any],
        path: str | Path,
    ) -> T:
        """
        Validate data against Pydantic model.

        Raises:
            ConfigurationError: If validation fails
        """
        try:
            return model_class.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed for {path}:\n{_format_validation_errors(e)}",
                {"path": str(path), "errors": e.errors()},
            ) from e

    @staticmethod
    def generate_simulation_template() -> str:
        """Generate simulation configuration template."""
        return """# Simulation Configuration Template
# fedridge - Decentralized Ridge Regression

name: "hippocampus_volume_fit"
description: "Three-site ridge regression on synthetic ROI data"
version: "1.0.0"

# Seed for generated site data
seed: 42
true_coefficients: [0.8, -0.4]

# Algorithm constants (all four required)
run:
  initial_learning_rate: 0.0002
  max_iterations: 200
  tolerance: 0.00001
  roi_keys: ["Left-Hippocampus", "Right-Hippocampus"]
  epsilon: 1.0
  ridge_lambda: 0.0
  normalization: "zscore"

# Participating sites. Omit data_path to generate synthetic rows.
sites:
  - site_id: "site_a"
    num_samples: 120
  - site_id: "site_b"
    num_samples: 80
  - site_id: "site_c"
    num_samples: 60
    # data_path: "site_c.csv"
    # response_column: "response"

# ROI bounds for the noisy average mode
rois:
  - key: "Left-Hippocampus"
    min: -5.0
    max: 5.0
  - key: "Right-Hippocampus"
    min: -5.0
    max: 5.0

output:
  output_path: "results/fit.json"
  log_level: "INFO"
"""

    @staticmethod
    def generate_run_template() -> str:
        """Generate bare run configuration template."""
        return """# Run Configuration Template
# fedridge - Algorithm constants shared by local and remote steps

initial_learning_rate: 0.0002
max_iterations: 200
tolerance: 0.00001
roi_keys: ["Left-Hippocampus"]
epsilon: 1.0
ridge_lambda: 0.0
normalization: "zscore"
"""


# =============================================================================
# Convenience Functions
# =============================================================================


def load_run_config(path: str | Path) -> RunConfig:
    """
    Load run configuration from YAML file.

    Raises:
        ConfigurationError: If loading or validation fails
    """
    loader = ConfigLoader()
    return loader.load_run(path)


def load_simulation_config(path: str | Path) -> SimulationConfig:
    """
    Load simulation configuration from YAML file.

    Raises:
        ConfigurationError: If loading or validation fails
    """
    loader = ConfigLoader()
    return loader.load_simulation(path)


def ensure_run_config(config: RunConfig | Mapping[str, Any]) -> RunConfig:
    """
    Accept a ready ``RunConfig`` or validate a mapping into one.

    Raises:
        ConfigurationError: If the mapping is not a valid run configuration
    """
    if isinstance(config, RunConfig):
        return config

    try:
        return RunConfig.model_validate(dict(config))
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid run configuration:\n{_format_validation_errors(e)}",
            {"errors": e.errors()},
        ) from e
    except TypeError as e:
        raise ConfigurationError(f"Invalid run configuration: {e}") from e
