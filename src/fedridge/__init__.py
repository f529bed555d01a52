"""
fedridge - Decentralized Ridge Regression

This package fits a ridge regression across independent sites without
moving their data:
- Local regression statistics against a shared coefficient vector
- Remote gradient aggregation with adaptive learning rate and convergence
- Laplace-noised simple averages of ROI values
- YAML-configured in-process simulations and a command-line interface
"""

__version__ = "1.0.0"

from fedridge.errors import (
    ConfigurationError,
    FedRidgeError,
    InputShapeError,
    MalformedInputError,
    MissingKeyError,
)
from fedridge.federated import LocalResult, ModelState, local_step, remote_step

__all__ = [
    "ConfigurationError",
    "FedRidgeError",
    "InputShapeError",
    "LocalResult",
    "MalformedInputError",
    "MissingKeyError",
    "ModelState",
    "local_step",
    "remote_step",
]
