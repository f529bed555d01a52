"""
Property-Based Tests using Hypothesis.

These tests use property-based testing to check invariants of the numeric
primitives, the privacy calibration and the aggregation state machine across
a wide range of inputs.
"""

import math

import numpy as np
from hypothesis import assume, given, settings, strategies as st
from hypothesis.extra.numpy import arrays

from fedridge.config import RunConfig
from fedridge.federated.aggregator import RemoteAggregator
from fedridge.federated.numeric import (
    column_wise_sum,
    mean,
    normalize,
    pick_ordered_values,
    total,
    unzip_roi_values,
    zip_roi_values,
)
from fedridge.federated.privacy import (
    RegionOfInterest,
    calculate_laplace_scale,
    calculate_sensitivity,
)
from fedridge.federated.state import OutcomeKind

# =============================================================================
# Custom Strategies
# =============================================================================

finite_floats = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)


@st.composite
def roi_key_lists(draw, min_size=1, max_size=8):
    """Generate unique ROI key lists."""
    return draw(
        st.lists(
            st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=12),
            min_size=min_size,
            max_size=max_size,
            unique=True,
        )
    )


@st.composite
def keyed_vectors(draw):
    """Generate ROI keys with one value per key."""
    keys = draw(roi_key_lists())
    values = draw(st.lists(finite_floats, min_size=len(keys), max_size=len(keys)))
    return keys, values


@st.composite
def feature_matrix(draw, min_rows=2, max_rows=50, min_cols=1, max_cols=5):
    """Generate feature matrices."""
    rows = draw(st.integers(min_value=min_rows, max_value=max_rows))
    cols = draw(st.integers(min_value=min_cols, max_value=max_cols))
    return draw(
        arrays(
            dtype=np.float64,
            shape=(rows, cols),
            elements=st.integers(min_value=-1000, max_value=1000).map(float),
        )
    )


# =============================================================================
# Numeric Properties
# =============================================================================


class TestNumericProperties:
    """Property-based tests for numeric primitives."""

    @given(keyed_vectors())
    @settings(max_examples=50, deadline=5000)
    def test_zip_unzip_inverse(self, data):
        """unzip(zip(values)) returns the values in key order."""
        keys, values = data

        assert unzip_roi_values(zip_roi_values(values, keys), keys) == values

    @given(keyed_vectors(), st.randoms())
    @settings(max_examples=50, deadline=5000)
    def test_unzip_ignores_mapping_order(self, data, random):
        """Dictionary insertion order never changes the result."""
        keys, values = data
        items = list(zip(keys, values))
        random.shuffle(items)

        assert unzip_roi_values(dict(items), keys) == values

    @given(keyed_vectors())
    @settings(max_examples=50, deadline=5000)
    def test_pick_matches_unzip(self, data):
        """For exact key sets picking and unzipping agree."""
        keys, values = data
        mapping = zip_roi_values(values, keys)

        assert pick_ordered_values(keys, mapping, strict=True) == unzip_roi_values(mapping, keys)

    @given(st.lists(finite_floats, min_size=1, max_size=100))
    @settings(max_examples=50, deadline=5000)
    def test_mean_times_length_is_total(self, values):
        """mean(x) * len(x) == total(x)."""
        assert math.isclose(mean(values) * len(values), total(values), rel_tol=1e-9, abs_tol=1e-6)

    @given(feature_matrix())
    @settings(max_examples=30, deadline=5000)
    def test_column_wise_sum_matches_total(self, matrix):
        """Column sums add up to the grand total."""
        assert math.isclose(
            float(column_wise_sum(matrix).sum()), total(matrix), rel_tol=1e-9, abs_tol=1e-6
        )

    @given(feature_matrix())
    @settings(max_examples=30, deadline=5000)
    def test_zscore_is_centered(self, matrix):
        """Normalized columns have zero mean."""
        result = normalize(matrix)

        assert result.shape == matrix.shape
        assert np.all(np.isfinite(result))
        np.testing.assert_allclose(result.mean(axis=0), 0.0, atol=1e-6)


# =============================================================================
# Privacy Properties
# =============================================================================


class TestPrivacyProperties:
    """Property-based tests for noise calibration."""

    @given(
        st.floats(min_value=-1e3, max_value=1e3),
        st.floats(min_value=0.0, max_value=1e3),
        st.integers(min_value=1, max_value=10_000),
        st.floats(min_value=1e-3, max_value=10.0),
    )
    @settings(max_examples=50, deadline=5000)
    def test_scale_formula(self, low, width, sample_size, epsilon):
        """scale == (max - min) / n / epsilon and never negative."""
        roi = RegionOfInterest("a", low, low + width)

        sensitivity = calculate_sensitivity(roi, sample_size)
        scale = calculate_laplace_scale(roi, sample_size, epsilon)

        assert sensitivity >= 0
        assert math.isclose(sensitivity, (roi.max - roi.min) / sample_size)
        assert math.isclose(scale, sensitivity / epsilon)

    @given(
        st.floats(min_value=0.1, max_value=1e3),
        st.integers(min_value=1, max_value=1000),
        st.floats(min_value=0.01, max_value=10.0),
    )
    @settings(max_examples=50, deadline=5000)
    def test_more_samples_less_noise(self, width, sample_size, epsilon):
        """Doubling the sample size halves the scale."""
        roi = RegionOfInterest("a", 0.0, width)

        assert math.isclose(
            calculate_laplace_scale(roi, 2 * sample_size, epsilon),
            calculate_laplace_scale(roi, sample_size, epsilon) / 2,
        )


# =============================================================================
# Aggregation Properties
# =============================================================================


class TestAggregationProperties:
    """Property-based tests for the remote state machine."""

    @given(
        st.lists(
            st.tuples(
                st.floats(min_value=-10.0, max_value=10.0),
                st.floats(min_value=0.0, max_value=100.0),
            ),
            min_size=1,
            max_size=6,
        ),
        st.integers(min_value=1, max_value=6),
    )
    @settings(max_examples=30, deadline=5000)
    def test_history_and_rate_invariants(self, site_values, rounds):
        """History grows by one per round and the rate stays positive."""
        config = RunConfig(
            initial_learning_rate=0.01,
            max_iterations=100,
            tolerance=1e-12,
            roi_keys=("a",),
        )
        aggregator = RemoteAggregator(config, rng=np.random.default_rng(0))
        assume(any(abs(gradient) > 1e-9 for gradient, _ in site_values))

        state = aggregator.seed()
        for k in range(1, rounds + 1):
            results = [
                {
                    "gradient": {"a": gradient},
                    "objective": objective * k,
                    "r2": 0.5,
                    "previousAggregateMVals": state.m_vals,
                }
                for gradient, objective in site_values
            ]
            outcome = aggregator.step(state, results)
            assume(outcome.kind is OutcomeKind.CONTINUE)
            previous, state = state, outcome.state

            assert len(state.history) == k
            assert state.iteration_count == previous.iteration_count + 1
            assert state.learning_rate > 0
            assert state.learning_rate in (previous.learning_rate, previous.learning_rate / 2)
