"""Tests for the logistic regression classifier."""

import numpy as np
import pytest

from postcorrect.exceptions import ConfigurationError
from postcorrect.ml import LogisticRegression, bool_value, normalize

X = np.array([[10, 5, 8, 4], [8, 2, 10, 4], [10, 10, 3, 4]], dtype=float)
Y = np.array([1.0, 0.0, 1.0])


class TestLogisticRegression:
    """Tests for fitting and predicting."""

    def test_fit_five_iterations(self):
        lr = LogisticRegression(learning_rate=0.05, ntrain=5)
        err = lr.fit(X, Y)
        np.testing.assert_allclose(lr.weights, [0.108, 0.225, -0.154, 0.008], atol=1e-2)
        assert err == pytest.approx(0.18, abs=1e-2)

    def test_predict(self):
        lr = LogisticRegression(learning_rate=0.05, ntrain=5)
        lr.fit(X, Y)
        np.testing.assert_array_equal(lr.predict(X), [1.0, 0.0, 1.0])

    def test_threshold_is_strict(self):
        lr = LogisticRegression(weights=np.array([0.0]))
        assert lr.predict_proba(np.array([[3.0]]))[0] == pytest.approx(0.5)
        assert lr.predict(np.array([[3.0]]), threshold=0.5)[0] == 0.0

    def test_refit_starts_from_zero(self):
        lr = LogisticRegression(learning_rate=0.05, ntrain=5)
        lr.fit(X, Y)
        first = lr.weights.copy()
        lr.fit(X, Y)
        np.testing.assert_allclose(lr.weights, first)

    def test_unfitted(self):
        with pytest.raises(ConfigurationError, match="not been fitted"):
            LogisticRegression().predict_proba(X)

    def test_feature_count_mismatch(self):
        lr = LogisticRegression(weights=np.zeros(3))
        with pytest.raises(ConfigurationError):
            lr.predict_proba(X)

    def test_no_rows(self):
        with pytest.raises(ConfigurationError):
            LogisticRegression().fit(np.zeros((0, 2)), np.zeros(0))

    def test_label_shape(self):
        with pytest.raises(ConfigurationError):
            LogisticRegression().fit(X, np.zeros(2))

    @pytest.mark.parametrize("kwargs", [{"learning_rate": 0}, {"ntrain": 0}])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ConfigurationError):
            LogisticRegression(**kwargs)

    def test_to_dict_round_trip(self):
        lr = LogisticRegression(learning_rate=0.05, ntrain=5)
        lr.fit(X, Y)
        back = LogisticRegression.from_dict(lr.to_dict())
        np.testing.assert_allclose(back.weights, lr.weights)
        assert back.learning_rate == 0.05
        assert back.ntrain == 5

    def test_unfitted_round_trip(self):
        assert LogisticRegression.from_dict(LogisticRegression().to_dict()).weights is None


class TestNormalize:
    """Tests for normalize."""

    def test_columns(self):
        x = np.array([[1.0, 0.0], [3.0, 0.0]])
        assert normalize(x) is x
        np.testing.assert_allclose(x, [[-0.5, 0.0], [0.5, 0.0]])

    def test_one_dimensional(self):
        x = np.array([0.0, 5.0, 10.0])
        np.testing.assert_allclose(normalize(x), [-0.5, 0.0, 0.5])

    def test_constant_boolean_column(self):
        x = np.array([[1.0], [1.0]])
        np.testing.assert_allclose(normalize(x), [[0.0], [0.0]])

    def test_constant_column_out_of_range(self):
        with pytest.raises(ConfigurationError):
            normalize(np.array([[5.0], [5.0]]))

    def test_empty(self):
        with pytest.raises(ConfigurationError):
            normalize(np.zeros((0, 3)))

    def test_integer_matrix(self):
        with pytest.raises(ConfigurationError):
            normalize(np.array([[1, 2], [3, 4]]))


def test_bool_value():
    assert bool_value(True) == 1.0
    assert bool_value(False) == 0.0
