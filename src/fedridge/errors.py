"""
Error types for fedridge.

Anything about the shape of a single participant's contribution is
recoverable (the contribution is skipped or resubmitted). Anything about the
global run configuration is fatal.
"""

from __future__ import annotations

from typing import Any


class FedRidgeError(Exception):
    """Base error carrying structured details for logging."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(FedRidgeError):
    """Invalid run configuration. Aborts the whole run."""


class InputShapeError(FedRidgeError, ValueError):
    """Predictor/response data of one participant has an unusable shape."""


class MalformedInputError(FedRidgeError, ValueError):
    """A participant result is missing required fields or has bad values."""


class MissingKeyError(FedRidgeError, KeyError):
    """Ordered ROI keys and a keyed mapping do not match exactly."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0]) if self.args else ""
