"""Benchmark tests for the federated ridge-regression rounds.

Run with:
    pytest tests/benchmarks/test_bench_federated.py --benchmark-only
    pytest tests/benchmarks/test_bench_federated.py --benchmark-compare
"""

import numpy as np
import pytest

from fedridge.config import RunConfig
from fedridge.data import generate_synthetic_site
from fedridge.federated import FederatedRun, LocalSite, RemoteAggregator, compute_regression

ROI_KEYS = tuple(f"roi_{i}" for i in range(16))


@pytest.fixture
def config():
    """Run configuration with 16 ROIs."""
    return RunConfig(
        initial_learning_rate=1e-4,
        max_iterations=200,
        tolerance=1e-3,
        roi_keys=ROI_KEYS,
    )


@pytest.fixture
def coefficients():
    """True coefficients of the synthetic sites."""
    return np.random.default_rng(42).uniform(-1.0, 1.0, len(ROI_KEYS))


@pytest.fixture
def large_site(coefficients):
    """One site with 10000 rows."""
    return generate_synthetic_site(coefficients, num_samples=10_000, seed=42)


class TestFederatedBenchmarks:
    """Benchmark suite for local and remote round operations."""

    def test_bench_local_regression(self, benchmark, large_site):
        """Benchmark one site's regression statistics."""
        x, y = large_site
        model = dict.fromkeys(ROI_KEYS, 0.5)

        result = benchmark(compute_regression, x, y, model, ROI_KEYS)

        assert set(result.gradient) == set(ROI_KEYS)

    def test_bench_remote_aggregation(self, benchmark, config):
        """Benchmark aggregating 100 site results."""
        aggregator = RemoteAggregator(config, rng=np.random.default_rng(0))
        seeded = aggregator.seed()
        rng = np.random.default_rng(1)
        results = [
            {
                "gradient": dict(zip(ROI_KEYS, rng.normal(size=len(ROI_KEYS)).tolist())),
                "objective": float(rng.uniform(1.0, 10.0)),
                "r2": 0.5,
                "previousAggregateMVals": seeded.m_vals,
                "siteId": f"site_{i}",
            }
            for i in range(100)
        ]

        outcome = benchmark(aggregator.step, seeded, results)

        assert outcome.state.iteration_count == 1

    @pytest.mark.slow
    def test_bench_full_run(self, benchmark, config, coefficients):
        """Benchmark a complete five-site run."""
        site_rows = [generate_synthetic_site(coefficients, 200, seed=i) for i in range(5)]

        def run_all():
            sites = [LocalSite(f"site_{i}", x, y, config) for i, (x, y) in enumerate(site_rows)]
            return FederatedRun(config, sites, rng=np.random.default_rng(0)).run()

        state = benchmark.pedantic(run_all, rounds=3, iterations=1)

        assert state.complete
