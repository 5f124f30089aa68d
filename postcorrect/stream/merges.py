"""
Synthesis of merge candidates from adjacent tokens of a line.

When an OCR engine recognizes a space inside a word, the word turns into
several tokens. To learn when adjacent tokens should be merged again, every
window of at least two adjacent tokens of a line is merged into a single
token carrying a Split payload. A merge is valid if all merged tokens are
aligned to the same ground-truth word.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from postcorrect.models import Char, PayloadKind, Split, Token
from postcorrect.stream.engine import Stage, each_line, each_token, send_tokens, stage

if TYPE_CHECKING:
    from postcorrect.stream.channel import HandOff

logger = logging.getLogger(__name__)

# Appended to a merged reading whose last constituent is empty.
EMPTY_MERGE_MARKER = "~"


def merge_tokens(window: list[Token]) -> Token:
    """
    Merge adjacent tokens into one.

    Readings are concatenated per index. Master readings are always
    concatenated as they are. Secondary readings and ground truth align
    every constituent of an OCR merge to the same span, so a constituent
    whose reading is already the suffix of the accumulated reading is
    skipped. An empty reading of the last constituent appends
    ``EMPTY_MERGE_MARKER``.
    """
    first, last = window[0], window[-1]
    readings = []
    for k in range(len(first.tokens)):
        acc = ""
        for t in window:
            s = t.tokens[k]
            if k > 0 and s and acc.endswith(s):
                continue
            acc += s
        if not last.tokens[k]:
            acc += EMPTY_MERGE_MARKER
        readings.append(acc)
    chars: list[Char] = []
    for t in window:
        chars.extend(t.chars)
    return Token(
        tokens=tuple(readings),
        confs=first.confs,
        chars=tuple(chars),
        document=first.document,
        file=first.file,
        group=first.group,
        id="+".join(t.id for t in window),
        sol=first.sol,
        eol=last.eol,
    )


def same_gt(window: list[Token]) -> bool:
    """True if every token of ``window`` has the same ground truth."""
    return all(window[j - 1].gt == window[j].gt for j in range(1, len(window)))


def generate_splits(line: list[Token], max_window: int | None = None) -> list[list[Token]]:
    """
    Generate all merge windows of ``line``, grouped by start position.

    For every start ``i`` the windows ``[i, j)`` run from the longest
    (up to the line end, or ``max_window`` tokens) down to two tokens. The
    longest window whose tokens share their ground truth is labelled
    valid; shorter windows of the same start are then labelled invalid
    without being checked.

    Returns:
        One list of Split-tokens per start position that has any window.
    """
    batches = []
    for i in range(len(line)):
        end = len(line) if max_window is None else min(len(line), i + max_window)
        batch = []
        found = False
        for j in range(end, i + 1, -1):
            window = line[i:j]
            valid = not found and same_gt(window)
            found = found or valid
            merged = merge_tokens(window)
            batch.append(merged.with_payload(Split(tokens=tuple(window), valid=valid)))
        if batch:
            batches.append(batch)
    return batches


def connect_merges_with_gt(max_window: int | None = None) -> Stage:
    """
    Replace every line by its merge windows, labelled against the ground truth.

    Raises:
        PipelineError: If the stream ends inside a line.
    """

    @stage("connect-merges-with-gt", produces=PayloadKind.SPLIT)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(line: list[Token]) -> None:
            for batch in generate_splits(line, max_window):
                await send_tokens(out, *batch)

        await each_line(inp, fn)

    return run


def connect_split_candidates() -> Stage:
    """
    Attach the profiler candidates of each merged master reading.

    Merges without a profile entry are dropped.
    """

    @stage("connect-split-candidates", consumes=PayloadKind.SPLIT, produces=PayloadKind.SPLIT)
    async def run(inp: HandOff | None, out: HandOff | None) -> None:
        async def fn(t: Token) -> None:
            split = t.payload_as(Split)
            interp = t.interpretation()
            if interp is None or not interp.candidates:
                logger.debug("No profile entry for merge %s", t)
                return
            split = Split(tokens=split.tokens, candidates=tuple(interp.candidates), valid=split.valid)
            await send_tokens(out, t.with_payload(split))

        await each_token(inp, fn)

    return run
