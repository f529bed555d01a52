"""
Remote Aggregation for Decentralized Ridge Regression

Combines the sites' partial gradients into one shared coefficient vector,
round after round, until the aggregate gradient vanishes or the iteration
cap is reached.

Round transition (prior state S, site results R):
    1. Iteration cap reached        -> S marked complete (EXHAUSTED)
    2. No prior state               -> seeded model
    3. R empty or out of sync       -> not ready, caller retries
    4. Aggregate                    -> summed objective and gradient, mean r^2
    5. ||gradient|| < tolerance     -> complete (CONVERGED), coefficients frozen
    6. Objective regressed?         -> halve learning rate, keep anchor;
                                       otherwise adopt S as the new anchor
    7. Descent step from the anchor
    8. Count the iteration and append to history

The aggregator holds configuration only. All run state is threaded through
the returned ``ModelState`` values, each built fresh from the previous one.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

import numpy as np

from fedridge.config.loader import ensure_run_config
from fedridge.config.schema import RunConfig
from fedridge.errors import ConfigurationError, MalformedInputError, MissingKeyError
from fedridge.federated import ridge
from fedridge.federated.numeric import (
    column_wise_sum,
    l2_norm,
    mean,
    total,
    unzip_roi_values,
    zip_roi_values,
)
from fedridge.federated.state import (
    BestFit,
    HistoryEntry,
    LocalResult,
    ModelState,
    OutcomeKind,
    RoundOutcome,
    RunStatus,
)

logger = logging.getLogger(__name__)


class RemoteAggregator:
    """
    Stateless driver of the remote state machine.

    Example:
        aggregator = RemoteAggregator(config)
        outcome = aggregator.step(None, [])          # seed
        outcome = aggregator.step(outcome.state, results)
    """

    def __init__(
        self,
        config: RunConfig | Mapping[str, Any],
        rng: np.random.Generator | None = None,
    ):
        """
        Initialize the aggregator.

        Args:
            config: Run configuration
            rng: Generator used to seed the coefficients

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = ensure_run_config(config)
        self.roi_keys: tuple[str, ...] = self.config.roi_keys
        self._rng = rng if rng is not None else np.random.default_rng()

        logger.info(
            f"Initialized RemoteAggregator: {len(self.roi_keys)} ROIs, "
            f"learning_rate={self.config.initial_learning_rate}, "
            f"max_iterations={self.config.max_iterations}, "
            f"tolerance={self.config.tolerance}"
        )

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed(self) -> ModelState:
        """Initial model with random coefficients in [0, 1)."""
        gradient = {key: 0.0 for key in self.roi_keys}
        m_vals = {key: float(self._rng.random()) for key in self.roi_keys}

        return ModelState(
            gradient=gradient,
            m_vals=m_vals,
            learning_rate=self.config.initial_learning_rate,
            objective=float("inf"),
            r2=0.0,
            previous_best_fit=BestFit(
                gradient=dict(gradient),
                m_vals=dict(m_vals),
                objective=float("inf"),
            ),
            iteration_count=0,
            history=(),
            complete=False,
            status=RunStatus.SEEDED,
        )

    # =========================================================================
    # Round Transition
    # =========================================================================

    def step(
        self,
        previous: ModelState | None,
        results: Sequence[LocalResult | Mapping[str, Any]] | None,
    ) -> RoundOutcome:
        """
        Run one remote round.

        Args:
            previous: State returned by the previous round, or None to seed
            results: Every site's result for this round

        Returns:
            Tagged outcome; ``NOT_READY`` carries no state

        Raises:
            ConfigurationError: If the previous state's ROI keys differ from
                the configured ones
        """
        if previous is not None:
            self._check_state_keys(previous)

        if previous is not None and previous.complete:
            logger.debug("Run already complete, no transition")
            kind = (
                OutcomeKind.CONVERGED
                if previous.status is RunStatus.CONVERGED
                else OutcomeKind.EXHAUSTED
            )
            return RoundOutcome(kind=kind, state=previous, reason="run already complete")

        if previous is not None and previous.iteration_count >= self.config.max_iterations:
            logger.info(f"Iteration cap reached after {previous.iteration_count} iterations")
            return RoundOutcome(
                kind=OutcomeKind.EXHAUSTED,
                state=replace(previous, complete=True, status=RunStatus.EXHAUSTED),
                reason="maximum iterations reached",
            )

        if previous is None:
            state = self.seed()
            logger.info(f"Seeded model: {state.m_vals}")
            return RoundOutcome(kind=OutcomeKind.SEEDED, state=state)

        accepted, dropped = self._validate_results(results or ())

        reason = self._sync_problem(previous, accepted, dropped)
        if reason is not None:
            logger.debug(f"Round not ready: {reason}")
            return RoundOutcome.not_ready(reason, dropped=dropped)

        return self._aggregate(previous, accepted)

    def _check_state_keys(self, state: ModelState) -> None:
        """The ROI key set is fixed for the whole run."""
        expected = set(self.roi_keys)
        for name, values in (
            ("mVals", state.m_vals),
            ("gradient", state.gradient),
            ("previousBestFit.mVals", state.previous_best_fit.m_vals),
            ("previousBestFit.gradient", state.previous_best_fit.gradient),
        ):
            if set(values) != expected:
                raise ConfigurationError(
                    f"Previous state {name} keys {sorted(values)} differ from "
                    f"configured ROI keys {list(self.roi_keys)}",
                    {"field": name, "keys": sorted(values), "roi_keys": list(self.roi_keys)},
                )

    def _validate_results(
        self,
        results: Sequence[LocalResult | Mapping[str, Any]],
    ) -> tuple[list[LocalResult], tuple[str, ...]]:
        """Parse results, dropping malformed ones."""
        accepted: list[LocalResult] = []
        dropped: list[str] = []

        for index, raw in enumerate(results):
            try:
                result = LocalResult.parse(raw)
                unzip_roi_values(result.gradient, self.roi_keys)
            except (MalformedInputError, MissingKeyError) as e:
                site = self._site_label(raw, index)
                logger.warning(f"Dropping contribution from {site}: {e}")
                dropped.append(site)
                continue
            accepted.append(result)

        return accepted, tuple(dropped)

    def _sync_problem(
        self,
        previous: ModelState,
        results: list[LocalResult],
        dropped: tuple[str, ...],
    ) -> str | None:
        """Why the round cannot be aggregated yet, or None when it can."""
        if dropped:
            return f"malformed results from {', '.join(dropped)}"

        if not results:
            return "waiting for site results"

        stale = [
            self._site_label(result, index)
            for index, result in enumerate(results)
            if result.previous_aggregate_m_vals != previous.m_vals
        ]
        if stale:
            return f"results out of sync with current model: {', '.join(stale)}"

        expected = self.config.expected_sites
        if expected is not None:
            reported = {result.site_id for result in results}
            missing = [site for site in expected if site not in reported]
            if missing:
                return f"waiting for sites: {', '.join(missing)}"

        return None

    def _aggregate(self, previous: ModelState, results: list[LocalResult]) -> RoundOutcome:
        """Aggregate a synchronized result set and advance the model."""
        keys = self.roi_keys
        contributors = tuple(self._site_label(result, i) for i, result in enumerate(results))

        objective = total([result.objective for result in results])
        gradient_vector = column_wise_sum(
            [unzip_roi_values(result.gradient, keys) for result in results]
        )
        gradient = zip_roi_values(gradient_vector, keys)
        r2 = mean([result.r2 for result in results])
        gradient_norm = l2_norm(gradient_vector)

        if gradient_norm < self.config.tolerance:
            logger.info(
                f"Converged after {previous.iteration_count} iterations: "
                f"|gradient|={gradient_norm:.3e} < {self.config.tolerance}"
            )
            return RoundOutcome(
                kind=OutcomeKind.CONVERGED,
                state=replace(
                    previous,
                    gradient=gradient,
                    objective=objective,
                    r2=r2,
                    complete=True,
                    status=RunStatus.CONVERGED,
                ),
                reason="gradient below tolerance",
                contributors=contributors,
            )

        learning_rate = previous.learning_rate
        if objective > previous.previous_best_fit.objective:
            # Regressed: smaller step from the same anchor
            learning_rate /= 2
            best_fit = previous.previous_best_fit
            logger.debug(
                f"Objective regressed ({objective:.6g} > "
                f"{previous.previous_best_fit.objective:.6g}), "
                f"learning_rate -> {learning_rate:.3e}"
            )
        else:
            best_fit = previous.best_fit_snapshot

        m_vals = zip_roi_values(
            ridge.recalculate_m_vals(
                learning_rate,
                unzip_roi_values(best_fit.m_vals, keys),
                unzip_roi_values(best_fit.gradient, keys),
            ),
            keys,
        )

        iteration = previous.iteration_count + 1
        entry = HistoryEntry(
            iteration=iteration,
            gradient=dict(gradient),
            m_vals=dict(m_vals),
            objective=objective,
            r2=r2,
            learning_rate=learning_rate,
        )

        state = ModelState(
            gradient=gradient,
            m_vals=m_vals,
            learning_rate=learning_rate,
            objective=objective,
            r2=r2,
            previous_best_fit=best_fit,
            iteration_count=iteration,
            history=previous.history + (entry,),
            complete=False,
            status=RunStatus.ITERATING,
        )

        logger.info(
            f"Iteration {iteration}: objective={objective:.6g}, r2={r2:.4f}, "
            f"|gradient|={gradient_norm:.3e}, learning_rate={learning_rate:.3e}, "
            f"sites={len(results)}"
        )

        return RoundOutcome(kind=OutcomeKind.CONTINUE, state=state, contributors=contributors)

    @staticmethod
    def _site_label(result: Any, index: int) -> str:
        site_id = None
        if isinstance(result, LocalResult):
            site_id = result.site_id
        elif isinstance(result, Mapping):
            site_id = result.get("site_id", result.get("siteId"))
        return str(site_id) if site_id else f"site #{index}"
