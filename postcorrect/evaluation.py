"""
Classifier evaluation counts and stream statistics.

``BinaryMetrics`` is filled by the ``evaluate`` sink, one prediction per
token; ``TokenStats`` is passed to ``tee`` to describe what a pipeline
actually feeds its classifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from postcorrect.models import Split, Token


class Outcome(Enum):
    TRUE_POSITIVE = "tp"
    FALSE_POSITIVE = "fp"
    FALSE_NEGATIVE = "fn"
    TRUE_NEGATIVE = "tn"


def _ratio(num: int | float, denom: int | float) -> float:
    return num / denom if denom else 0.0


@dataclass
class BinaryMetrics:
    """
    Confusion counts of a binary classifier.

    All derived rates are 0.0 while their denominator is empty.
    """

    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    true_negatives: int = 0

    def add(self, gt: bool, pred: bool) -> Outcome:
        """Count one prediction against its ground truth."""
        if gt and pred:
            self.true_positives += 1
            return Outcome.TRUE_POSITIVE
        if pred:
            self.false_positives += 1
            return Outcome.FALSE_POSITIVE
        if gt:
            self.false_negatives += 1
            return Outcome.FALSE_NEGATIVE
        self.true_negatives += 1
        return Outcome.TRUE_NEGATIVE

    @property
    def total(self) -> int:
        return (
            self.true_positives
            + self.false_positives
            + self.false_negatives
            + self.true_negatives
        )

    @property
    def precision(self) -> float:
        """Share of positive predictions that were right."""
        return _ratio(self.true_positives, self.true_positives + self.false_positives)

    @property
    def recall(self) -> float:
        """Share of positive tokens that were predicted."""
        return _ratio(self.true_positives, self.true_positives + self.false_negatives)

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return _ratio(2 * p * r, p + r)

    @property
    def accuracy(self) -> float:
        return _ratio(self.true_positives + self.true_negatives, self.total)

    def to_dict(self) -> dict:
        return {
            "true_positives": self.true_positives,
            "false_positives": self.false_positives,
            "false_negatives": self.false_negatives,
            "true_negatives": self.true_negatives,
            "precision": round(self.precision, 4),
            "recall": round(self.recall, 4),
            "f1": round(self.f1, 4),
            "accuracy": round(self.accuracy, 4),
            "total": self.total,
        }


@dataclass
class TokenStats:
    """
    Token counts of a stream, usable as a ``tee`` callback.

    With ``gt`` set the last reading of every token is ground truth and
    OCR errors and merges are counted as well.
    """

    gt: bool = False
    short_len: int = 4

    tokens: int = 0
    lexicon_entries: int = 0
    short: int = 0
    ocr_errors: int = 0
    merges: int = 0
    valid_merges: int = 0
    by_group: dict[str, int] = field(default_factory=dict)

    def __call__(self, t: Token) -> None:
        self.tokens += 1
        self.by_group[t.group] = self.by_group.get(t.group, 0) + 1
        if t.is_lexicon_entry():
            self.lexicon_entries += 1
        if len(t.master) < self.short_len:
            self.short += 1
        if isinstance(t.payload, Split):
            self.merges += 1
            if t.payload.valid:
                self.valid_merges += 1
        if self.gt and len(t.tokens) > 1 and t.master != t.gt:
            self.ocr_errors += 1

    def to_dict(self) -> dict:
        return {
            "tokens": self.tokens,
            "lexicon_entries": self.lexicon_entries,
            "short": self.short,
            "ocr_errors": self.ocr_errors,
            "merges": self.merges,
            "valid_merges": self.valid_merges,
            "by_group": dict(self.by_group),
        }
