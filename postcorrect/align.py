"""
Word alignment of parallel OCR readings.

The master reading defines the word boundaries. Every other reading of
the same line is cut at the whitespace closest to each master word
boundary, so that all readings end up with exactly as many spans as the
master has words. A reading that lacks a space where the master has one
(an OCR merge) is not cut at that boundary: both master words are aligned
to the same span.

Example:
    >>> align_strings("n uch ter in", "nuchter in")
    [['n', 'nuchter'], ['uch', 'nuchter'], ['ter', 'nuchter'], ['in', 'in']]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pos:
    """A half open span ``[begin, end)`` of ``text``."""

    begin: int
    end: int
    text: str

    def __str__(self) -> str:
        return self.text[self.begin : self.end]


def _strip(begin: int, end: int, text: str) -> tuple[int, int]:
    while begin < len(text) and text[begin].isspace():
        begin += 1
    while end > begin and text[end - 1].isspace():
        end -= 1
    return begin, end


def _mkpos(begin: int, end: int, text: str) -> Pos:
    begin, end = _strip(begin, end, text)
    if end < begin:
        end = begin
    return Pos(begin, end, text)


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def alignment_pos(text: str, pos: int) -> int:
    """
    Find the split point of ``text`` closest to ``pos``.

    Returns ``pos`` itself when it holds a space, otherwise the nearest
    space found by searching outwards (right before left at equal
    distance). When no space is found the end of ``text`` is returned.
    """
    n = len(text)
    if pos >= n:
        return n
    if text[pos] == " ":
        return pos
    i = 1
    while True:
        if pos + i >= n and i >= pos:
            return n
        if pos + i < n and text[pos + i] == " ":
            return pos + i
        if i <= pos and text[pos - i] == " ":
            return pos - i
        i += 1


def _align_at(spaces: list[int], text: str) -> list[Pos]:
    if not text:
        return [Pos(0, 0, text) for _ in range(len(spaces) + 1)]
    ret: list[Pos] = []
    b = -1
    for space in spaces:
        e = alignment_pos(text, space)
        b = _skip_space(text, b + 1)
        if e <= b:
            # no split point left: reuse the previous word's span
            b = ret[-1].begin
        ret.append(_mkpos(b, e, text))
        b = e
    if len(text) <= b:
        ret.append(_mkpos(ret[-1].begin, len(text), text))
    else:
        ret.append(_mkpos(b + 1, len(text), text))
    return ret


def _master_words(master: str) -> tuple[list[int], list[Pos]]:
    spaces: list[int] = []
    words: list[Pos] = []
    b = -1
    i, end = _strip(0, len(master), master)
    while i < end:
        if master[i].isspace():
            spaces.append(i)
            words.append(_mkpos(b + 1, i, master))
            while i + 1 < len(master) and master[i + 1].isspace():
                i += 1
            b = i
        i += 1
    words.append(_mkpos(b + 1, len(master), master))
    return spaces, words


def align(master: str, *others: str) -> list[list[Pos]]:
    """
    Align ``others`` to the words of ``master``.

    Returns one row per master word. ``row[0]`` is the master word and
    ``row[k]`` the span of ``others[k - 1]`` aligned to it. Leading and
    trailing whitespace of every input is ignored.

    Args:
        master: The reading that defines word boundaries.
        *others: Secondary readings and ground truth of the same line.

    Returns:
        ``len(words(master))`` rows of ``1 + len(others)`` spans.
    """
    spaces, words = _master_words(master)
    rows = [[word] for word in words]
    for other in others:
        b, e = _strip(0, len(other), other)
        for row, pos in zip(rows, _align_at(spaces, other[b:e]), strict=True):
            row.append(pos)
    return rows


def align_strings(master: str, *others: str) -> list[list[str]]:
    """Like :func:`align` but returns the aligned strings."""
    return [[str(pos) for pos in row] for row in align(master, *others)]


# =============================================================================
# EDIT DISTANCE ALIGNMENT
# =============================================================================


def _trace(master: str, other: str) -> str:
    """Edit script of ``master -> other``: ``#`` keep/substitute, ``-`` delete, ``+`` insert."""
    script = []
    for op in Levenshtein.opcodes(master, other):
        if op.tag in ("equal", "replace"):
            script.append("#" * (op.src_end - op.src_start))
        elif op.tag == "delete":
            script.append("-" * (op.src_end - op.src_start))
        else:
            script.append("+" * (op.dest_end - op.dest_start))
    return "".join(script)


def _next_space(text: str, pos: int) -> int:
    while pos < len(text) and not text[pos].isspace():
        pos += 1
    return pos


def _align_pair(master: str, other: str) -> list[Pos]:
    """
    Cut ``other`` where the edit script reaches the master's word breaks.

    The span start only moves on when the cut does not lie past the
    current master position; otherwise ``other`` merged the words and
    the following master words keep the current span.
    """
    ret: list[Pos] = []
    pi = si = sb = 0
    for op in _trace(master, other):
        if pi >= len(master) or si >= len(other):
            break
        if master[pi].isspace() and (pi == 0 or not master[pi - 1].isspace()):
            end = _next_space(other, si)
            ret.append(_mkpos(sb, end, other))
            if end <= pi:
                sb = _skip_space(other, end)
        if op != "+":
            pi += 1
        if op != "-":
            si += 1
    ret.append(_mkpos(sb, len(other), other))
    return ret


def align_lev(master: str, *others: str) -> list[list[Pos]]:
    """
    Align ``others`` to the words of ``master`` along a Levenshtein edit script.

    Follows character correspondences instead of the nearest whitespace.
    Leading and trailing whitespace is ignored, so the returned spans
    refer to the stripped strings. A reading that runs out of spaces
    aligns the remaining master words to the span that merged them;
    missing spans are empty.
    """
    master = master.strip()
    _, words = _master_words(master)
    rows = [[word] for word in words]
    for other in others:
        other = other.strip()
        spans = _align_pair(master, other)
        spans += [Pos(0, 0, other)] * (len(rows) - len(spans))
        for row, pos in zip(rows, spans):
            row.append(pos)
    return rows
