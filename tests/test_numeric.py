"""
Tests for the numeric and ridge primitives.

Tests cover:
- Normalization strategies
- Column-wise reductions and norms
- Sum/mean of nested sequences
- ROI keyed vectors (zip, unzip, ordered pick)
- Ridge objective, gradient, descent step and r^2
"""

import numpy as np
import pytest

from fedridge.errors import ConfigurationError, InputShapeError, MissingKeyError
from fedridge.federated import ridge
from fedridge.federated.numeric import (
    NORMALIZERS,
    column_wise_average,
    column_wise_sum,
    l2_norm,
    mean,
    normalize,
    pick_ordered_values,
    total,
    unzip_roi_values,
    zip_roi_values,
)

# =============================================================================
# Normalization Tests
# =============================================================================


class TestNormalize:
    """Test normalize()."""

    def test_zscore_columns(self):
        """Each column ends up with zero mean and unit variance."""
        values = np.array([[1.0, 10.0], [2.0, 20.0], [3.0, 60.0], [4.0, 30.0]])
        result = normalize(values)

        np.testing.assert_allclose(result.mean(axis=0), [0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(result.std(axis=0), [1.0, 1.0])

    def test_zscore_vector(self):
        """A vector is normalized as a whole."""
        result = normalize([2.0, 4.0, 6.0])

        assert result.shape == (3,)
        np.testing.assert_allclose(result, [-1.224744871, 0.0, 1.224744871])

    def test_zero_variance_column_is_centered(self):
        """Constant columns become zero instead of NaN."""
        values = np.array([[5.0, 1.0], [5.0, 2.0], [5.0, 3.0]])
        result = normalize(values)

        assert not np.isnan(result).any()
        np.testing.assert_array_equal(result[:, 0], [0.0, 0.0, 0.0])

    def test_minmax(self):
        """Min-max maps each column onto [0, 1]."""
        values = np.array([[0.0, 5.0], [5.0, 5.0], [10.0, 5.0]])
        result = normalize(values, "minmax")

        np.testing.assert_allclose(result[:, 0], [0.0, 0.5, 1.0])
        np.testing.assert_array_equal(result[:, 1], [0.0, 0.0, 0.0])

    def test_registered_strategies(self):
        """Both built-in strategies are registered."""
        assert set(NORMALIZERS) >= {"zscore", "minmax"}

    def test_unknown_strategy(self):
        """Unknown strategies are a configuration error."""
        with pytest.raises(ConfigurationError):
            normalize([1.0, 2.0], "robust")

    def test_empty_input(self):
        """Empty input cannot be normalized."""
        with pytest.raises(InputShapeError):
            normalize([])

    def test_three_dimensional_input(self):
        """Only vectors and matrices are accepted."""
        with pytest.raises(InputShapeError):
            normalize(np.ones((2, 2, 2)))


# =============================================================================
# Reduction Tests
# =============================================================================


class TestReductions:
    """Test column-wise reductions, norms and sums."""

    def test_column_wise_sum(self):
        """Columns are summed across rows."""
        np.testing.assert_array_equal(column_wise_sum([[1, 2], [3, 4], [5, 6]]), [9, 12])

    def test_column_wise_average(self):
        """Columns are averaged across rows."""
        np.testing.assert_array_equal(column_wise_average([[1, 2], [3, 4]]), [2, 3])

    def test_column_wise_sum_rejects_vector(self):
        """A plain vector is not a matrix."""
        with pytest.raises(InputShapeError):
            column_wise_sum([1, 2, 3])

    def test_column_wise_average_rejects_empty(self):
        """An empty matrix has no columns to average."""
        with pytest.raises(InputShapeError):
            column_wise_average(np.empty((0, 2)))

    def test_l2_norm(self):
        """Euclidean norm."""
        assert l2_norm([3.0, 4.0]) == pytest.approx(5.0)
        assert l2_norm([0.0, 0.0]) == 0.0

    def test_total_flattens(self):
        """Nested sequences are summed completely."""
        assert total([1, [2, 3], [[4]], np.array([5.0])]) == pytest.approx(15.0)

    def test_mean(self):
        """Mean of a flat sequence."""
        assert mean([1.0, 2.0, 3.0, 4.0]) == pytest.approx(2.5)

    def test_mean_of_empty_is_zero(self):
        """An empty sequence has mean 0."""
        assert mean([]) == 0.0

    def test_mean_of_nested_uses_outer_length(self):
        """Nested entries add to the sum but not to the divisor."""
        assert mean([[1, 2], [3]]) == pytest.approx(3.0)


# =============================================================================
# Keyed Vector Tests
# =============================================================================


class TestRoiValues:
    """Test zip/unzip/pick of ROI keyed vectors."""

    def test_zip(self, roi_keys):
        """Values are paired with keys in order."""
        assert zip_roi_values([1.5, -2.0], roi_keys) == {
            "Left-Hippocampus": 1.5,
            "Right-Hippocampus": -2.0,
        }

    def test_zip_converts_numpy_scalars(self, roi_keys):
        """numpy scalars become plain floats."""
        zipped = zip_roi_values(np.array([1.0, 2.0]), roi_keys)

        assert all(type(value) is float for value in zipped.values())

    def test_zip_length_mismatch(self, roi_keys):
        """The number of values must match the number of keys."""
        with pytest.raises(MissingKeyError):
            zip_roi_values([1.0], roi_keys)

    def test_unzip_follows_key_order(self, roi_keys):
        """Dictionary order is irrelevant."""
        mapping = {"Right-Hippocampus": 2.0, "Left-Hippocampus": 1.0}

        assert unzip_roi_values(mapping, roi_keys) == [1.0, 2.0]

    def test_unzip_missing_key(self, roi_keys):
        """A missing key is reported."""
        with pytest.raises(MissingKeyError, match="Right-Hippocampus"):
            unzip_roi_values({"Left-Hippocampus": 1.0}, roi_keys)

    def test_unzip_unexpected_key(self, roi_keys):
        """An extra key is reported too."""
        mapping = {"Left-Hippocampus": 1.0, "Right-Hippocampus": 2.0, "Amygdala": 3.0}

        with pytest.raises(MissingKeyError, match="Amygdala"):
            unzip_roi_values(mapping, roi_keys)

    def test_missing_key_error_is_key_error(self, roi_keys):
        """Callers catching KeyError still see the error."""
        with pytest.raises(KeyError):
            unzip_roi_values({}, roi_keys)

    def test_pick_ordered_values(self):
        """Values are picked in the requested order; extra keys are ignored."""
        values = {"silly": 100, "thing": 200, "wat": 300}

        assert pick_ordered_values(["wat", "silly"], values) == [300, 100]

    def test_pick_ordered_values_missing_is_none(self):
        """Missing keys yield None by default."""
        assert pick_ordered_values(["a", "b"], {"a": 1}) == [1, None]

    def test_pick_ordered_values_strict(self):
        """Strict mode rejects missing keys."""
        with pytest.raises(MissingKeyError):
            pick_ordered_values(["a", "b"], {"a": 1}, strict=True)

    def test_pick_ordered_values_rejects_bad_types(self):
        """Order must be a key sequence and values a mapping."""
        with pytest.raises(TypeError):
            pick_ordered_values("ab", {"a": 1})
        with pytest.raises(TypeError):
            pick_ordered_values(["a"], [1])


# =============================================================================
# Ridge Tests
# =============================================================================


class TestRidge:
    """Test ridge objective, gradient and helpers."""

    @pytest.fixture
    def problem(self):
        x = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        y = np.array([1.0, 2.0, 3.0])
        return x, y

    def test_apply_model(self, problem):
        """Predictions are X @ w."""
        x, _ = problem
        np.testing.assert_array_equal(ridge.apply_model([1.0, 2.0], x), [1.0, 2.0, 3.0])

    def test_objective_at_exact_fit(self, problem):
        """The exact solution has zero squared error."""
        x, y = problem
        assert ridge.objective([1.0, 2.0], x, y) == pytest.approx(0.0)

    def test_objective_with_penalty(self, problem):
        """The ridge penalty adds lambda * ||w||^2."""
        x, y = problem
        assert ridge.objective([1.0, 2.0], x, y, ridge_lambda=0.5) == pytest.approx(2.5)

    def test_objective_value(self, problem):
        """Sum of squared residuals at w = 0."""
        x, y = problem
        assert ridge.objective([0.0, 0.0], x, y) == pytest.approx(14.0)

    def test_gradient_matches_finite_differences(self, problem):
        """Analytic gradient agrees with central differences."""
        x, y = problem
        w = np.array([0.3, -0.7])
        step = 1e-6

        numeric = [
            (
                ridge.objective(w + step * e, x, y, 0.2)
                - ridge.objective(w - step * e, x, y, 0.2)
            )
            / (2 * step)
            for e in np.eye(2)
        ]

        np.testing.assert_allclose(ridge.gradient(w, x, y, 0.2), numeric, rtol=1e-5)

    def test_gradient_vanishes_at_solution(self, problem):
        """No gradient at the least-squares solution."""
        x, y = problem
        np.testing.assert_allclose(ridge.gradient([1.0, 2.0], x, y), [0.0, 0.0], atol=1e-12)

    def test_recalculate_m_vals(self):
        """One descent step."""
        np.testing.assert_allclose(
            ridge.recalculate_m_vals(0.1, [1.0, 1.0], [2.0, -4.0]),
            [0.8, 1.4],
        )

    def test_r_squared_perfect(self):
        """Perfect predictions explain all variance."""
        assert ridge.r_squared([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_r_squared_mean_prediction(self):
        """Predicting the mean explains nothing."""
        assert ridge.r_squared([1.0, 2.0, 3.0], [2.0, 2.0, 2.0]) == pytest.approx(0.0)

    def test_r_squared_constant_response(self):
        """A constant response has r^2 of 0."""
        assert ridge.r_squared([2.0, 2.0], [1.0, 3.0]) == 0.0
