"""
Assembly of complete training, evaluation and correction pipelines.

Every run reads snippet directories, normalizes the readings, attaches
the language models and unigram counts and then continues with the
stages its classifier needs:

- ``rr``: profile, drop lexicon entries, one token per candidate
- ``dm``: as ``rr``, then rank the candidates with the ``rr`` classifier
- ``ms``: merge windows, profile the merges, attach their candidates
- ``ff``: profile, keep only lexicon entries

Tokens shorter than ``MIN_TOKEN_LEN`` are dropped before profiling; merge
runs only drop empty tokens, since short tokens are what they merge.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from postcorrect.config import PostCorrectConfig
from postcorrect.evaluation import BinaryMetrics, TokenStats
from postcorrect.exceptions import ConfigurationError
from postcorrect.model import Model, read_model
from postcorrect.models import Token
from postcorrect.profiler import CachedProfiler, Profiler, SpellcheckProfiler
from postcorrect.snippets import Extensions
from postcorrect.stream import (
    Stage,
    add_short_tokens_to_profile,
    connect_candidates,
    connect_corrections,
    connect_language_model,
    connect_merges_with_gt,
    connect_profile,
    connect_rankings,
    connect_split_candidates,
    connect_unigrams,
    filter_bad,
    filter_lexicon_entries,
    filter_non_lexicon_entries,
    filter_short,
    mark_corrections,
    normalize,
    pipe,
    tee,
)
from postcorrect.training import evaluate, get_kind, train

logger = logging.getLogger(__name__)

SHORT_TOKEN_LEN = 3
MIN_TOKEN_LEN = 4


def make_profiler(config: PostCorrectConfig, suffix: str = "-profile.json.gz") -> Profiler:
    profiler: Profiler = SpellcheckProfiler(
        language=config.profiler.language, max_distance=config.profiler.max_distance
    )
    if config.cache:
        profiler = CachedProfiler(profiler, suffix=suffix)
    return profiler


def _preprocess(
    config: PostCorrectConfig,
    model: Model,
    dirs: Sequence[str],
    exts: Sequence[str],
    gt: bool,
    kind: str,
) -> list[Stage]:
    return [
        Extensions(exts).tokenize(*dirs),
        normalize(),
        filter_bad(config.nocr + 1 if gt else config.nocr),
        filter_short(1 if kind == "ms" else MIN_TOKEN_LEN),
        connect_language_model(model.ngrams),
        connect_unigrams(),
    ]


def classifier_stages(
    kind: str,
    config: PostCorrectConfig,
    model: Model,
    profiler: Profiler | None = None,
) -> list[Stage]:
    """The stages between preprocessing and the ``kind`` classifier's sink."""
    get_kind(kind)
    if kind == "ms":
        return [
            connect_merges_with_gt(config.ms.window or None),
            connect_profile(profiler or make_profiler(config, "-ms-profile.json.gz")),
            add_short_tokens_to_profile(SHORT_TOKEN_LEN),
            connect_split_candidates(),
        ]
    if kind == "ff":
        return [
            connect_profile(profiler or make_profiler(config)),
            filter_non_lexicon_entries(),
        ]
    stages = [
        connect_profile(profiler or make_profiler(config)),
        filter_lexicon_entries(),
        connect_candidates(),
    ]
    if kind == "dm":
        lr, fs = model.get("rr", config.nocr)
        stages.append(connect_rankings(lr, fs, config.nocr))
    return stages


def _load_model(config: PostCorrectConfig, create: bool) -> Model:
    if not config.model:
        raise ConfigurationError("no model file configured")
    return read_model(config.model, config.ngrams, create=create)


async def run_training(
    kind: str,
    config: PostCorrectConfig,
    dirs: Sequence[str],
    exts: Sequence[str],
    *,
    profiler: Profiler | None = None,
    update: bool = False,
    stats: TokenStats | None = None,
) -> Model:
    """Train the ``kind`` classifier on ``dirs`` and write it to ``config.model``."""
    model = _load_model(config, create=True)
    settings = {"rr": config.rr, "dm": config.dm, "ms": config.ms, "ff": config.ff}[
        get_kind(kind).name
    ]
    stages = _preprocess(config, model, dirs, exts, gt=True, kind=kind)
    stages += classifier_stages(kind, config, model, profiler)
    if stats is not None:
        stages.append(tee(stats))
    stages.append(train(kind, settings, model, config.nocr, update=update, path=config.model))
    await pipe(*stages)
    return model


async def run_evaluation(
    kind: str,
    config: PostCorrectConfig,
    dirs: Sequence[str],
    exts: Sequence[str],
    *,
    profiler: Profiler | None = None,
    threshold: float = 0.5,
) -> BinaryMetrics:
    """Evaluate the ``kind`` classifier of ``config.model`` on ``dirs``."""
    model = _load_model(config, create=False)
    metrics = BinaryMetrics()
    stages = _preprocess(config, model, dirs, exts, gt=True, kind=kind)
    stages += classifier_stages(kind, config, model, profiler)
    stages.append(evaluate(kind, model, config.nocr, metrics, threshold=threshold))
    await pipe(*stages)
    return metrics


async def run_correction(
    config: PostCorrectConfig,
    dirs: Sequence[str],
    exts: Sequence[str],
    *,
    profiler: Profiler | None = None,
    threshold: float = 0.5,
) -> list[Token]:
    """Rank and decide corrections for all non-lexicon tokens of ``dirs``."""
    model = _load_model(config, create=False)
    dm_lr, dm_fs = model.get("dm", config.nocr)
    corrected: list[Token] = []
    stages = _preprocess(config, model, dirs, exts, gt=config.gt, kind="dm")
    stages += classifier_stages("dm", config, model, profiler)
    stages += [
        connect_corrections(dm_lr, dm_fs, config.nocr),
        mark_corrections(threshold),
        tee(corrected.append),
    ]
    await pipe(*stages)
    return corrected
