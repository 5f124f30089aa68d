"""
Token filters, document connectors and the candidate, ranking and
correction stages.

Every function here returns a stage to be composed with
:func:`postcorrect.stream.pipe`. Document connectors collect all tokens of
a document, write to the shared Document once and only then pass the
tokens on, so no later stage ever sees a document that is still being
written.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import numpy as np

from postcorrect.exceptions import PipelineError
from postcorrect.models import (
    Candidate,
    Correction,
    Document,
    Interpretation,
    PayloadKind,
    Ranking,
    Rankings,
    Token,
    apply_ocr_to_correction,
    chars_to_str,
    normalize_text,
)
from postcorrect.stream.engine import (
    Stage,
    each_token,
    each_token_in_document,
    send_tokens,
    stage,
)

if TYPE_CHECKING:
    from postcorrect.features import FeatureSet
    from postcorrect.lm import FreqList
    from postcorrect.ml.lr import LogisticRegression
    from postcorrect.profiler import Profiler
    from postcorrect.stream.channel import HandOff

logger = logging.getLogger(__name__)

CORRECTION_BATCH_SIZE = 1024


def _require_document(document: Document | None, tokens: list[Token]) -> Document:
    if document is None:
        raise PipelineError(f"token {tokens[0].id or tokens[0]} has no document")
    return document


# =============================================================================
# FILTERS
# =============================================================================


def normalize() -> Stage:
    """Normalize every reading of every token (see ``normalize_text``)."""

    @stage("normalize")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            await send_tokens(out, replace(t, tokens=tuple(normalize_text(s) for s in t.tokens)))

        await each_token(inp, fn)

    return run


def filter_bad(n: int) -> Stage:
    """Drop tokens with fewer than ``n`` readings."""

    @stage("filter-bad")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            if len(t.tokens) >= n:
                await send_tokens(out, t)

        await each_token(inp, fn)

    return run


def filter_short(n: int) -> Stage:
    """Drop tokens whose master reading has fewer than ``n`` characters."""

    @stage("filter-short")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            if len(t.master) >= n:
                await send_tokens(out, t)

        await each_token(inp, fn)

    return run


def filter_lexicon_entries() -> Stage:
    """Drop tokens the profiler accepted as they are."""

    @stage("filter-lexicon-entries")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            if not t.is_lexicon_entry():
                await send_tokens(out, t)

        await each_token(inp, fn)

    return run


def filter_non_lexicon_entries() -> Stage:
    """Keep only tokens the profiler accepted as they are."""

    @stage("filter-non-lexicon-entries")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            if t.is_lexicon_entry():
                await send_tokens(out, t)

        await each_token(inp, fn)

    return run


# =============================================================================
# DOCUMENT CONNECTORS
# =============================================================================


def connect_language_model(ngrams: dict[str, FreqList]) -> Stage:
    """Attach the global language models to every document."""

    @stage("connect-language-model")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(document: Document | None, tokens: list[Token]) -> None:
            _require_document(document, tokens).ngrams = ngrams
            await send_tokens(out, *tokens)

        await each_token_in_document(inp, fn)

    return run


def connect_unigrams() -> Stage:
    """Count the master readings of each document into its unigram list."""

    @stage("connect-unigrams")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(document: Document | None, tokens: list[Token]) -> None:
            doc = _require_document(document, tokens)
            for t in tokens:
                doc.add_unigram(t.master)
            await send_tokens(out, *tokens)

        await each_token_in_document(inp, fn)

    return run


def connect_profile(profiler: Profiler, log: logging.Logger | None = None) -> Stage:
    """
    Profile the master readings of each document and attach the profile.

    Args:
        profiler: Produces the profile of a document's tokens.
        log: Logger for per-document progress; defaults to this module's.
    """
    log = log or logger

    @stage("connect-profile")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(document: Document | None, tokens: list[Token]) -> None:
            doc = _require_document(document, tokens)
            log.info("Profiling %d tokens of %s", len(tokens), doc.group or "document")
            doc.connect_profile(await profiler.profile(tokens))
            await send_tokens(out, *tokens)

        await each_token_in_document(inp, fn)

    return run


def add_short_tokens_to_profile(max_len: int) -> Stage:
    """
    Add unprofiled master readings of at most ``max_len`` characters to
    the profile as lexicon entries.
    """

    @stage("add-short-tokens-to-profile")
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(document: Document | None, tokens: list[Token]) -> None:
            doc = _require_document(document, tokens)
            profile = dict(doc.profile)
            for t in tokens:
                if len(t.master) > max_len or t.master in profile:
                    continue
                profile[t.master] = Interpretation(
                    ocr=t.master,
                    candidates=[Candidate(suggestion=t.master, modern=t.master, weight=1.0)],
                )
            doc.connect_profile(profile)
            await send_tokens(out, *tokens)

        await each_token_in_document(inp, fn)

    return run


# =============================================================================
# CANDIDATES, RANKINGS, CORRECTIONS
# =============================================================================


def connect_candidates() -> Stage:
    """
    Emit one copy of each token per profiler candidate of its master reading.

    Tokens without a profile entry are dropped.
    """

    @stage("connect-candidates", produces=PayloadKind.CANDIDATE)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            interp = t.interpretation()
            if interp is None:
                logger.debug("No profile entry for %s", t)
                return
            for candidate in interp.candidates:
                await send_tokens(out, t.with_payload(candidate))

        await each_token(inp, fn)

    return run


def _rank(tokens: list[Token], lr: LogisticRegression, fs: FeatureSet, nocr: int) -> Token:
    x = np.array([fs.calculate(t, nocr) for t in tokens], dtype=float)
    probs = lr.predict_proba(x)
    rankings = sorted(
        (Ranking(t.payload_as(Candidate), float(p)) for t, p in zip(tokens, probs, strict=True)),
        key=lambda r: r.prob,
        reverse=True,
    )
    return tokens[0].with_payload(Rankings(tuple(rankings)))


def connect_rankings(lr: LogisticRegression, fs: FeatureSet, nocr: int) -> Stage:
    """
    Collapse the candidate copies of each token into one ranked token.

    Consecutive tokens with the same file and id form a group. The group
    is replaced by its first token carrying all candidates ordered by
    descending probability.
    """

    @stage("connect-rankings", consumes=PayloadKind.CANDIDATE, produces=PayloadKind.RANKINGS)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        group: list[Token] = []

        async def fn(t: Token) -> None:
            nonlocal group
            if group and (group[0].file, group[0].id) != (t.file, t.id):
                await send_tokens(out, _rank(group, lr, fs, nocr))
                group = []
            group.append(t)

        await each_token(inp, fn)
        if group:
            await send_tokens(out, _rank(group, lr, fs, nocr))

    return run


def connect_corrections(lr: LogisticRegression, fs: FeatureSet, nocr: int) -> Stage:
    """Decide for each ranked token whether its top candidate is a correction."""

    @stage("connect-corrections", consumes=PayloadKind.RANKINGS, produces=PayloadKind.CORRECTION)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        batch: list[Token] = []

        async def flush() -> None:
            x = np.array([fs.calculate(t, nocr) for t in batch], dtype=float)
            probs = lr.predict_proba(x)
            for t, p in zip(batch, probs, strict=True):
                top = t.payload_as(Rankings).top()
                await send_tokens(out, t.with_payload(Correction(top.candidate, float(p))))
            batch.clear()

        async def fn(t: Token) -> None:
            batch.append(t)
            if len(batch) >= CORRECTION_BATCH_SIZE:
                await flush()

        await each_token(inp, fn)
        if batch:
            await flush()

    return run


def mark_corrections(threshold: float = 0.5) -> Stage:
    """
    Fill in ``cor`` of every token from its correction decision.

    Tokens whose decision probability exceeds ``threshold`` get the
    suggestion cased and punctuated like the raw OCR, others keep the OCR.
    """

    @stage("mark-corrections", consumes=PayloadKind.CORRECTION)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            correction = t.payload_as(Correction)
            ocr = chars_to_str(t.chars) or t.master
            cor = ocr
            if correction.conf > threshold:
                cor = apply_ocr_to_correction(ocr, correction.candidate.suggestion)
            await send_tokens(out, replace(t, cor=cor))

        await each_token(inp, fn)

    return run
