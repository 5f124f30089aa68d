"""
Training and evaluation sinks for the four classifiers.

- ``rr`` ranks the profiler candidates of a token (tokens carry a
  Candidate payload)
- ``dm`` decides whether the top ranked candidate should replace the OCR
  (tokens carry Rankings)
- ``ms`` decides whether adjacent tokens should be merged (tokens carry a
  Split)
- ``ff`` decides whether a lexicon entry is an OCR error after all (a
  false friend; tokens carry no payload)

Both sinks compute the feature vectors of all incoming tokens with the
classifier's feature set. Training normalizes the collected matrix before
fitting; evaluation predicts every token on its own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from postcorrect.config import CAUTIOUS, REDUNDANT, TrainingSettings
from postcorrect.exceptions import ConfigurationError
from postcorrect.features import FeatureSet
from postcorrect.ml.lr import TRUE, LogisticRegression, bool_value, normalize
from postcorrect.models import Candidate, PayloadKind, Rankings, Split, Token
from postcorrect.stream.engine import Stage, each_token, stage

if TYPE_CHECKING:
    from postcorrect.evaluation import BinaryMetrics
    from postcorrect.model import Model
    from postcorrect.stream.channel import HandOff

logger = logging.getLogger(__name__)


# =============================================================================
# LABELS
# =============================================================================


def rr_label(t: Token) -> float:
    """1 if the token's candidate is its ground truth."""
    return bool_value(t.payload_as(Candidate).suggestion == t.gt)


def dm_label(t: Token) -> float:
    """1 if the token's top ranked candidate is its ground truth."""
    return bool_value(t.payload_as(Rankings).top().candidate.suggestion == t.gt)


def ms_label(t: Token) -> float:
    """1 if the merged tokens form a single ground-truth word."""
    return bool_value(t.payload_as(Split).valid)


def ff_label(t: Token) -> float:
    """1 if the OCR differs from the ground truth."""
    return bool_value(t.master != t.gt)


@dataclass(frozen=True)
class Kind:
    name: str
    payload: PayloadKind | None
    label: Callable[[Token], float]


KINDS = {
    "rr": Kind("rr", PayloadKind.CANDIDATE, rr_label),
    "dm": Kind("dm", PayloadKind.RANKINGS, dm_label),
    "ms": Kind("ms", PayloadKind.SPLIT, ms_label),
    "ff": Kind("ff", None, ff_label),
}


def get_kind(name: str) -> Kind:
    if name not in KINDS:
        raise ConfigurationError(f"bad classifier kind {name!r}, expected one of {sorted(KINDS)}")
    return KINDS[name]


def use_token_for_dm_training(t: Token, filter: str) -> bool:
    """
    Decide whether a ranked token takes part in decision-maker training.

    ``cautious`` uses every token. Otherwise tokens with an incorrect OCR
    are used only if their top suggestion is correct, and ``redundant``
    also skips tokens whose OCR and top suggestion are both correct.
    """
    if filter == CAUTIOUS:
        return True
    suggestion = t.payload_as(Rankings).top().candidate.suggestion
    if t.master != t.gt:
        return suggestion == t.gt
    if filter == REDUNDANT:
        return suggestion != t.gt
    return True


# =============================================================================
# SINKS
# =============================================================================


def train(
    kind: str,
    settings: TrainingSettings,
    model: Model,
    nocr: int,
    *,
    update: bool = False,
    path: Path | str | None = None,
    log: logging.Logger | None = None,
) -> Stage:
    """
    Sink stage fitting the ``kind`` classifier on all incoming tokens.

    Args:
        kind: ``rr``, ``dm``, ``ms`` or ``ff``.
        settings: Features and gradient descent parameters; a ``filter``
            attribute selects decision-maker training tokens.
        model: Receives the fitted classifier.
        nocr: Number of OCR readings per token.
        update: Continue with the classifier and features already in
            ``model`` instead of the configured ones.
        path: Write the model here after fitting.
        log: Logger for training progress.

    Raises:
        ConfigurationError: If no token reaches the sink.
    """
    k = get_kind(kind)
    log = log or logger
    if update:
        lr, fs = model.get(kind, nocr)
    else:
        lr = LogisticRegression(learning_rate=settings.learning_rate, ntrain=settings.ntrain)
        fs = FeatureSet.from_names(settings.features)
    dm_filter = getattr(settings, "filter", CAUTIOUS)

    @stage(f"train-{kind}", consumes=k.payload)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        xs: list[list[float]] = []
        ys: list[float] = []

        async def fn(t: Token) -> None:
            if kind == "dm" and not use_token_for_dm_training(t, dm_filter):
                return
            xs.append(fs.calculate(t, nocr))
            ys.append(k.label(t))

        await each_token(inp, fn)
        if not ys:
            raise ConfigurationError(f"train {kind}: no input")
        x = normalize(np.array(xs, dtype=float))
        y = np.array(ys, dtype=float)
        log.info(
            "Fitting %s: %d tokens, %d features, nocr=%d, lr=%g, ntrain=%d",
            kind,
            x.shape[0],
            x.shape[1],
            nocr,
            lr.learning_rate,
            lr.ntrain,
        )
        err = await asyncio.to_thread(lr.fit, x, y)
        log.info("Fitted %s: remaining error %g", kind, err)
        model.put(kind, nocr, lr, fs.names)
        if path is not None:
            model.write(path)

    return run


def evaluate(
    kind: str,
    model: Model,
    nocr: int,
    metrics: BinaryMetrics,
    *,
    threshold: float = 0.5,
    log: logging.Logger | None = None,
) -> Stage:
    """
    Sink stage counting the ``kind`` classifier's predictions into ``metrics``.

    Raises:
        ConfigurationError: If ``model`` has no such classifier.
    """
    k = get_kind(kind)
    log = log or logger
    lr, fs = model.get(kind, nocr)

    @stage(f"eval-{kind}", consumes=k.payload)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            x = np.array([fs.calculate(t, nocr)], dtype=float)
            pred = lr.predict(x, threshold)[0] == TRUE
            outcome = metrics.add(k.label(t) == TRUE, bool(pred))
            log.debug("%s %s: %s", kind, outcome.value, t)

        await each_token(inp, fn)
        log.info("Evaluated %s: %s", kind, metrics.to_dict())

    return run
