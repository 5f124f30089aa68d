"""Machine learning primitives for ranking and decision making."""

from postcorrect.ml.lr import LogisticRegression, bool_value, normalize

__all__ = ["LogisticRegression", "bool_value", "normalize"]
