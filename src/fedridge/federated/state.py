"""
Data models exchanged between sites and the aggregator.

``ModelState`` and its parts are frozen dataclasses: each round builds a new
record with ``dataclasses.replace`` and never touches the previous one.
``LocalResult`` arrives over the wire and is validated with pydantic.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fedridge.errors import MalformedInputError


# =============================================================================
# Enums
# =============================================================================


class RunStatus(str, Enum):
    """Lifecycle of a federated run."""

    SEEDED = "seeded"
    ITERATING = "iterating"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


class OutcomeKind(str, Enum):
    """Tag of a round outcome."""

    SEEDED = "seeded"
    CONTINUE = "continue"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    NOT_READY = "not_ready"


# =============================================================================
# Model State
# =============================================================================


def _float_map(data: Mapping[str, Any]) -> dict[str, float]:
    return {str(key): float(value) for key, value in data.items()}


def _first(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


def _objective_to_wire(value: float) -> float | str:
    # JSON has no infinity
    return "Infinity" if math.isinf(value) else value


@dataclass(frozen=True)
class BestFit:
    """Anchor snapshot the next descent step starts from."""

    gradient: dict[str, float]
    m_vals: dict[str, float]
    objective: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "gradient": dict(self.gradient),
            "mVals": dict(self.m_vals),
            "objective": _objective_to_wire(self.objective),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BestFit":
        """Build from ``to_dict`` output (snake_case keys are accepted too)."""
        return cls(
            gradient=_float_map(data["gradient"]),
            m_vals=_float_map(_first(data, "mVals", "m_vals")),
            objective=float(data["objective"]),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Snapshot of one accepted round."""

    iteration: int
    gradient: dict[str, float]
    m_vals: dict[str, float]
    objective: float
    r2: float
    learning_rate: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "iteration": self.iteration,
            "gradient": dict(self.gradient),
            "mVals": dict(self.m_vals),
            "objective": _objective_to_wire(self.objective),
            "r2": self.r2,
            "learningRate": self.learning_rate,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        """Build from ``to_dict`` output."""
        return cls(
            iteration=int(data["iteration"]),
            gradient=_float_map(data["gradient"]),
            m_vals=_float_map(_first(data, "mVals", "m_vals")),
            objective=float(data["objective"]),
            r2=float(data["r2"]),
            learning_rate=float(_first(data, "learningRate", "learning_rate")),
        )


@dataclass(frozen=True)
class ModelState:
    """
    The aggregator's evolving record.

    Invariants:
        - ``gradient`` and ``m_vals`` are keyed by exactly the run's ROI keys
        - ``learning_rate`` is positive
        - ``iteration_count`` never decreases
        - a complete state is terminal
    """

    gradient: dict[str, float]
    m_vals: dict[str, float]
    learning_rate: float
    objective: float
    r2: float
    previous_best_fit: BestFit
    iteration_count: int = 0
    history: tuple[HistoryEntry, ...] = ()
    complete: bool = False
    status: RunStatus = RunStatus.SEEDED

    @property
    def best_fit_snapshot(self) -> BestFit:
        """This state's own ``{gradient, m_vals, objective}``."""
        return BestFit(
            gradient=dict(self.gradient),
            m_vals=dict(self.m_vals),
            objective=self.objective,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "gradient": dict(self.gradient),
            "mVals": dict(self.m_vals),
            "learningRate": self.learning_rate,
            "objective": _objective_to_wire(self.objective),
            "r2": self.r2,
            "previousBestFit": self.previous_best_fit.to_dict(),
            "iterationCount": self.iteration_count,
            "history": [entry.to_dict() for entry in self.history],
            "complete": self.complete,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelState":
        """
        Build from ``to_dict`` output.

        Raises:
            MalformedInputError: If required fields are missing or invalid
        """
        try:
            complete = bool(data.get("complete", False))
            default_status = RunStatus.EXHAUSTED if complete else RunStatus.ITERATING
            return cls(
                gradient=_float_map(data["gradient"]),
                m_vals=_float_map(_first(data, "mVals", "m_vals")),
                learning_rate=float(_first(data, "learningRate", "learning_rate")),
                objective=float(data["objective"]),
                r2=float(data.get("r2", 0.0)),
                previous_best_fit=BestFit.from_dict(
                    _first(data, "previousBestFit", "previous_best_fit")
                ),
                iteration_count=int(_first(data, "iterationCount", "iteration_count", default=0)),
                history=tuple(HistoryEntry.from_dict(h) for h in data.get("history", ())),
                complete=complete,
                status=RunStatus(data.get("status", default_status)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedInputError(f"Invalid model state: {e}", {"error": str(e)}) from e


# =============================================================================
# Local Result
# =============================================================================


class LocalResult(BaseModel):
    """
    One participant's contribution to a round.

    ``previous_aggregate_m_vals`` echoes the model vector the result was
    computed against and serves as the synchronization token.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", allow_inf_nan=False
    )

    gradient: dict[str, float] = Field(..., description="Local gradient keyed by ROI")
    objective: float = Field(..., description="Local ridge objective")
    r2: float = Field(..., description="Local coefficient of determination")
    previous_aggregate_m_vals: dict[str, float] = Field(
        ...,
        alias="previousAggregateMVals",
        description="Model vector the result was computed against",
    )
    site_id: str | None = Field(
        default=None,
        alias="siteId",
        description="Reporting site, when known",
    )

    @classmethod
    def parse(cls, data: "LocalResult | Mapping[str, Any]") -> "LocalResult":
        """
        Validate a wire payload.

        Raises:
            MalformedInputError: If required fields are missing or invalid
        """
        if isinstance(data, LocalResult):
            return data
        if not isinstance(data, Mapping):
            raise MalformedInputError(
                f"Expected a mapping, got {type(data).__name__}",
                {"type": type(data).__name__},
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            missing = [".".join(str(x) for x in err["loc"]) for err in e.errors()]
            raise MalformedInputError(
                f"Malformed local result: {', '.join(missing)}",
                {"site_id": data.get("site_id", data.get("siteId")), "fields": missing},
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire form."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Round Outcome
# =============================================================================


@dataclass(frozen=True)
class RoundOutcome:
    """
    Tagged result of one remote round.

    ``state`` is None only for ``NOT_READY``.
    """

    kind: OutcomeKind
    state: ModelState | None = None
    reason: str | None = None
    contributors: tuple[str, ...] = ()
    dropped: tuple[str, ...] = ()

    @property
    def ready(self) -> bool:
        """Whether the round produced a state."""
        return self.kind is not OutcomeKind.NOT_READY

    @property
    def is_terminal(self) -> bool:
        """Whether the run has ended."""
        return self.kind in (OutcomeKind.CONVERGED, OutcomeKind.EXHAUSTED)

    @classmethod
    def not_ready(cls, reason: str, dropped: tuple[str, ...] = ()) -> "RoundOutcome":
        """Outcome telling the caller to retry later."""
        return cls(kind=OutcomeKind.NOT_READY, reason=reason, dropped=dropped)
