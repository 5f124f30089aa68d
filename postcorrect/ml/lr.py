"""
Logistic regression trained with batch gradient descent.

Example:
    >>> x = np.array([[10, 5, 8, 4], [8, 2, 10, 4], [10, 10, 3, 4]], dtype=float)
    >>> lr = LogisticRegression(learning_rate=0.05, ntrain=5)
    >>> lr.fit(x, np.array([1.0, 0.0, 1.0]))
    >>> lr.predict(x)
    array([1., 0., 1.])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from postcorrect.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TRUE = 1.0
FALSE = 0.0


def bool_value(b: bool) -> float:
    return TRUE if b else FALSE


def sigmoid(z: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-z))


def normalize(x: np.ndarray) -> np.ndarray:
    """
    Mean-normalize every column of ``x`` in place.

    A one dimensional ``x`` is treated as a single column.

    Each value becomes ``(v - mean) / (max - min)`` of its column. Columns
    without spread are left on a unit scale if their values lie in
    ``[0, 1]`` (boolean features).

    Returns:
        ``x`` itself.

    Raises:
        ConfigurationError: If ``x`` is empty or a column without spread
            has values outside ``[0, 1]``.
    """
    cols = x[:, np.newaxis] if x.ndim == 1 else x
    if cols.ndim != 2 or cols.shape[0] == 0 or cols.shape[1] == 0:
        raise ConfigurationError(f"cannot normalize matrix of shape {x.shape}")
    if not np.issubdtype(x.dtype, np.floating):
        raise ConfigurationError(f"cannot normalize {x.dtype} matrix in place")
    for j in range(cols.shape[1]):
        col = cols[:, j]
        lo, hi = col.min(), col.max()
        if lo == hi:
            if lo < 0.0 or hi > 1.0:
                raise ConfigurationError(f"cannot normalize column {j}: constant value {lo}")
            lo, hi = 0.0, 1.0
        cols[:, j] = (col - col.mean()) / (hi - lo)
    return x


@dataclass
class LogisticRegression:
    """
    Binary logistic regression classifier.

    Attributes:
        learning_rate: Gradient descent step size.
        ntrain: Number of gradient descent iterations per fit.
        weights: One weight per feature column, ``None`` before fitting.
    """

    learning_rate: float = 0.9
    ntrain: int = 100_000
    weights: np.ndarray | None = field(default=None, repr=False)

    def __post_init__(self):
        """Validate configuration."""
        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be > 0, got {self.learning_rate}")
        if self.ntrain < 1:
            raise ConfigurationError(f"ntrain must be >= 1, got {self.ntrain}")

    def fit(self, x: np.ndarray, y: np.ndarray) -> float:
        """
        Fit the weights to feature rows ``x`` and labels ``y``.

        Starts from zero weights and runs ``ntrain`` iterations of batch
        gradient descent.

        Returns:
            The remaining error ``sqrt(sum((p - y)^2)) / rows`` of the last
            iteration.

        Raises:
            ConfigurationError: If there are no rows or the shapes differ.
        """
        rows = x.shape[0]
        if rows == 0:
            raise ConfigurationError("cannot fit without training data")
        if y.shape != (rows,):
            raise ConfigurationError(f"labels of shape {y.shape} for {rows} rows")
        self.weights = np.zeros(x.shape[1])
        err = float("inf")
        for _ in range(self.ntrain):
            dif = sigmoid(x @ self.weights) - y
            err = float(np.sqrt(np.sum(dif**2)) / rows)
            self.weights -= self.learning_rate * (x.T @ dif) / rows
        logger.debug("Fitted %d rows x %d features, error %g", rows, x.shape[1], err)
        return err

    def predict_proba(self, x: np.ndarray) -> np.ndarray:
        """Probability of the positive class for every row of ``x``."""
        if self.weights is None:
            raise ConfigurationError("classifier has not been fitted")
        if x.shape[1] != len(self.weights):
            raise ConfigurationError(
                f"expected {len(self.weights)} features, got {x.shape[1]}"
            )
        return sigmoid(x @ self.weights)

    def predict(self, x: np.ndarray, threshold: float = 0.5) -> np.ndarray:
        """Label rows whose probability is strictly above ``threshold`` 1, others 0."""
        return np.where(self.predict_proba(x) > threshold, TRUE, FALSE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weights": [] if self.weights is None else self.weights.tolist(),
            "learning_rate": self.learning_rate,
            "ntrain": self.ntrain,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogisticRegression:
        weights = data.get("weights") or None
        return cls(
            learning_rate=data["learning_rate"],
            ntrain=data["ntrain"],
            weights=None if weights is None else np.asarray(weights, dtype=float),
        )
