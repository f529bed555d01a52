"""
Remote Entry Point and In-Process Run Driver

``remote_step`` is the aggregator's round entry point: a pure function of the
previous state and the current round's site results.

``FederatedRun`` plays the orchestrator for local experimentation. It
broadcasts the model to in-process sites, collects their results, calls the
aggregator and repeats until the run is complete.

Features:
    - Round-based coordination of in-process sites
    - Audit log of every round event
    - Event callbacks for progress reporting
    - JSON export of the final state and its history

Usage:
    run = FederatedRun(config, sites)
    final_state = run.run()
"""

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from fedridge.config.loader import ensure_run_config
from fedridge.config.schema import RunConfig
from fedridge.errors import ConfigurationError, InputShapeError
from fedridge.federated.aggregator import RemoteAggregator
from fedridge.federated.client import LocalSite
from fedridge.federated.state import LocalResult, ModelState, OutcomeKind, RoundOutcome

logger = logging.getLogger(__name__)


# =============================================================================
# Remote Entry Point
# =============================================================================


@dataclass
class RemoteRequest:
    """Inputs of the aggregator for one round."""

    previous_state: ModelState | Mapping[str, Any] | None
    participant_results: Sequence[LocalResult | Mapping[str, Any]] = ()


def remote_step(
    request: RemoteRequest,
    config: RunConfig | Mapping[str, Any],
    rng: np.random.Generator | None = None,
) -> ModelState | None:
    """
    Round entry point for the aggregator.

    Returns None (no-op) while waiting for a synchronized, complete result
    set; otherwise the new state (seeded, intermediate or terminal).

    Raises:
        ConfigurationError: If ``config`` is invalid
        MalformedInputError: If ``previous_state`` cannot be parsed
    """
    previous = request.previous_state
    if previous is not None and not isinstance(previous, ModelState):
        previous = ModelState.from_dict(previous)

    outcome = RemoteAggregator(config, rng=rng).step(previous, request.participant_results)
    return outcome.state if outcome.ready else None


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class RoundInfo:
    """Information about a coordinated round."""

    round_number: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    outcome: str | None = None
    participating_sites: list[str] = field(default_factory=list)
    dropped_sites: list[str] = field(default_factory=list)
    objective: float | None = None
    learning_rate: float | None = None
    r2: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "round_number": self.round_number,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "outcome": self.outcome,
            "participating_sites": self.participating_sites,
            "dropped_sites": self.dropped_sites,
            "objective": self.objective,
            "learning_rate": self.learning_rate,
            "r2": self.r2,
        }


# =============================================================================
# Federated Run
# =============================================================================


class FederatedRun:
    """
    In-process orchestration of a decentralized ridge-regression fit.

    Each round:
        1. Broadcasts the current coefficients to every site
        2. Collects the sites' results (a site with nothing new resubmits
           its previous, still synchronized result)
        3. Calls the aggregator
        4. Stops when the aggregator reports a terminal outcome

    Example:
        run = FederatedRun(config, sites)
        state = run.run()
    """

    def __init__(
        self,
        config: RunConfig | Mapping[str, Any],
        sites: Sequence[LocalSite],
        rng: np.random.Generator | None = None,
        max_rounds: int | None = None,
    ):
        """
        Initialize the run.

        Args:
            config: Run configuration shared by all sites
            sites: Participating in-process sites
            rng: Generator used to seed the coefficients
            max_rounds: Safety cap on coordinated rounds (defaults to
                ``max_iterations + 2``: seed, iterations, final gate)

        Raises:
            ConfigurationError: If the configuration is invalid or no sites
                are given
        """
        self.config = ensure_run_config(config)
        if not sites:
            raise ConfigurationError("A federated run needs at least one site")

        site_ids = [site.site_id for site in sites]
        if len(set(site_ids)) != len(site_ids):
            raise ConfigurationError("Site ids must be unique", {"sites": site_ids})

        self.sites = list(sites)
        self.aggregator = RemoteAggregator(self.config, rng=rng)
        self.max_rounds = max_rounds or self.config.max_iterations + 2

        self.state: ModelState | None = None
        self.last_outcome: RoundOutcome | None = None
        self._round_history: list[RoundInfo] = []
        self._callbacks: list[Callable[[str, dict[str, Any]], None]] = []
        self._audit_log: list[dict[str, Any]] = []

        logger.info(f"Initialized FederatedRun: {len(self.sites)} sites, max_rounds={self.max_rounds}")

    def add_callback(self, callback: Callable[[str, dict[str, Any]], None]) -> None:
        """Add callback for run events."""
        self._callbacks.append(callback)

    def _notify_callbacks(self, event: str, data: dict[str, Any]) -> None:
        """Notify all callbacks."""
        for callback in self._callbacks:
            try:
                callback(event, data)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    def _log_audit(self, action: str, details: dict[str, Any]) -> None:
        """Record an audit event."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "details": details,
        }
        self._audit_log.append(entry)
        logger.debug(f"AUDIT: {action} - {json.dumps(details, default=str)}")

    # =========================================================================
    # Coordination
    # =========================================================================

    @property
    def complete(self) -> bool:
        """Whether the run has reached a terminal state."""
        return self.state is not None and self.state.complete

    def _collect_results(self) -> tuple[list[LocalResult], list[str]]:
        """Broadcast the model and gather one result per site, plus failed sites."""
        assert self.state is not None
        model_vector = self.state.m_vals
        results = []
        failed = []

        for site in self.sites:
            try:
                result = site.run_round(model_vector)
            except InputShapeError:
                # Already logged and recorded by the site
                failed.append(site.site_id)
                continue
            if result is None:
                # Model unchanged: the previous result is still in sync
                previous = site.last_result
                if previous is not None and previous.previous_aggregate_m_vals == model_vector:
                    result = previous
            if result is not None:
                results.append(result)

        return results, failed

    def run_round(self) -> RoundOutcome:
        """
        Coordinate a single round.

        A site whose rows cannot be used fails only its own contribution:
        the round is not ready and the model stays unchanged.
        """
        round_info = RoundInfo(round_number=len(self._round_history) + 1)

        if self.state is None:
            outcome = self.aggregator.step(None, [])
        else:
            results, failed = self._collect_results()
            if failed:
                outcome = RoundOutcome.not_ready(
                    f"site errors: {', '.join(failed)}", dropped=tuple(failed)
                )
            else:
                outcome = self.aggregator.step(self.state, results)

        round_info.completed_at = datetime.now(timezone.utc)
        round_info.outcome = outcome.kind.value
        round_info.participating_sites = list(outcome.contributors)
        round_info.dropped_sites = list(outcome.dropped)

        if outcome.state is not None:
            self.state = outcome.state
            round_info.objective = outcome.state.objective
            round_info.learning_rate = outcome.state.learning_rate
            round_info.r2 = outcome.state.r2

        self.last_outcome = outcome
        self._round_history.append(round_info)

        self._log_audit(f"round_{outcome.kind.value}", round_info.to_dict())
        self._notify_callbacks("round_completed", round_info.to_dict())

        return outcome

    def run(self) -> ModelState:
        """
        Run rounds until the aggregator reports a terminal outcome.

        Returns:
            The terminal state

        Raises:
            RuntimeError: If ``max_rounds`` pass without a terminal state,
                which happens when the sites never synchronize or a site
                keeps failing
        """
        self._log_audit("run_started", {"sites": [site.site_id for site in self.sites]})

        for _ in range(self.max_rounds):
            outcome = self.run_round()
            if outcome.is_terminal:
                break
        else:
            raise RuntimeError(f"Run did not finish within {self.max_rounds} rounds")

        assert self.state is not None
        self._log_audit(
            "run_completed",
            {
                "status": self.state.status.value,
                "iterations": self.state.iteration_count,
                "objective": self.state.objective,
            },
        )
        self._notify_callbacks("run_completed", {"status": self.state.status.value})

        logger.info(
            f"Run {self.state.status.value} after {self.state.iteration_count} iterations: "
            f"objective={self.state.objective:.6g}, r2={self.state.r2:.4f}"
        )
        return self.state

    # =========================================================================
    # Status and Export
    # =========================================================================

    def get_round_history(self) -> list[dict[str, Any]]:
        """All coordinated rounds, including seed and not-ready rounds."""
        return [info.to_dict() for info in self._round_history]

    def get_audit_log(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get recent audit log entries."""
        return self._audit_log[-limit:]

    def get_status(self) -> dict[str, Any]:
        """Get comprehensive run status."""
        return {
            "status": self.state.status.value if self.state else "initialized",
            "iteration_count": self.state.iteration_count if self.state else 0,
            "rounds": len(self._round_history),
            "not_ready_rounds": sum(
                1 for info in self._round_history if info.outcome == OutcomeKind.NOT_READY.value
            ),
            "sites": [site.get_state() for site in self.sites],
        }

    def save_results(self, path: str | Path) -> Path:
        """
        Write the current state (with its history) to a JSON file.

        Raises:
            RuntimeError: If the run has not started
        """
        if self.state is None:
            raise RuntimeError("Run has not started")

        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "roi_keys": list(self.config.roi_keys),
            "state": self.state.to_dict(),
            "rounds": self.get_round_history(),
        }
        output_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")

        logger.info(f"Saved results: {output_path}")
        return output_path
