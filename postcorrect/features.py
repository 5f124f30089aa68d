"""
Feature functions for the ranking, decision and merge classifiers.

A feature function ``f(token, i, n)`` computes one value for OCR index
``i`` of ``n`` parallel OCR readings, or returns ``None`` if it does not
apply to that index. Features are registered by name; names may carry a
comma separated argument list, e.g. ``CandidateTrigramFreq(3grams)``
where the argument names a language model.

Example:
    >>> fs = FeatureSet.from_names(["OCRTokenLen", "CandidateLevDist"])
    >>> fs.calculate(token, nocr=2)
    [5.0, 5.0, 1.0, 2.0]
"""

from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rapidfuzz.distance import Levenshtein

from postcorrect.exceptions import ConfigurationError, PayloadError
from postcorrect.lm import FreqList
from postcorrect.ml.lr import bool_value
from postcorrect.models import (
    Candidate,
    Document,
    Pattern,
    Ranking,
    Rankings,
    Split,
    Token,
)

if TYPE_CHECKING:
    from postcorrect.models import Char

logger = logging.getLogger(__name__)

FeatureFunc = Callable[[Token, int, int], "float | None"]
FeatureFactory = Callable[[list[str]], FeatureFunc]

# =============================================================================
# REGISTRY
# =============================================================================

_REGISTRY: dict[str, FeatureFactory] = {}

FEATURE_NAME = re.compile(r"^(.*)\((.*)\)$")


def _feature(*names: str) -> Callable[[FeatureFunc], FeatureFunc]:
    """Register a feature function that takes no arguments."""

    def register(fn: FeatureFunc) -> FeatureFunc:
        def factory(args: list[str]) -> FeatureFunc:
            if args:
                raise ConfigurationError(f"{names[0]}: no arguments allowed, got {args}")
            return fn

        for name in names:
            _REGISTRY[name] = factory
        return fn

    return register


def _factory(name: str) -> Callable[[FeatureFactory], FeatureFactory]:
    """Register a function building a feature from its arguments."""

    def register(fn: FeatureFactory) -> FeatureFactory:
        _REGISTRY[name] = fn
        return fn

    return register


def parse_feature_name(name: str) -> tuple[str, list[str]]:
    """
    Split ``name(arg1, arg2)`` into the name and its trimmed arguments.

    ``name`` and ``name()`` both yield no arguments.
    """
    m = FEATURE_NAME.match(name)
    if m is None:
        return name, []
    args = [arg.strip() for arg in m.group(2).split(",")]
    if args == [""]:
        args = []
    return m.group(1), args


def registered_features() -> list[str]:
    return sorted(_REGISTRY)


@dataclass
class FeatureSet:
    """An ordered list of named feature functions."""

    names: list[str] = field(default_factory=list)
    funcs: list[FeatureFunc] = field(default_factory=list, repr=False)

    @classmethod
    def from_names(cls, names: list[str]) -> FeatureSet:
        """
        Build a feature set from registered feature names.

        Raises:
            ConfigurationError: For unknown names or bad arguments.
        """
        funcs = []
        for name in names:
            fname, args = parse_feature_name(name)
            factory = _REGISTRY.get(fname)
            if factory is None:
                raise ConfigurationError(f"no such feature function: {fname}")
            funcs.append(factory(args))
        return cls(names=list(names), funcs=funcs)

    def __len__(self) -> int:
        return len(self.funcs)

    def calculate(self, t: Token, nocr: int) -> list[float]:
        """Feature vector of ``t``; inapplicable (feature, index) pairs are omitted."""
        xs = []
        for f in self.funcs:
            for i in range(nocr):
                val = f(t, i, nocr)
                if val is not None:
                    xs.append(float(val))
        return xs

    def expanded_names(self, kind: str, nocr: int) -> list[str]:
        """
        Names of the columns :meth:`calculate` produces, ``name/ocr``.

        Args:
            kind: Classifier kind, one of ``rr``, ``dm``, ``ms`` or ``ff``.
            nocr: Number of OCR readings.
        """
        t = _dummy_token(kind, nocr)
        ret = []
        for name, f in zip(self.names, self.funcs, strict=True):
            for i in range(nocr):
                if f(t, i, nocr) is not None:
                    ret.append(f"{name}/{i + 1}")
        return ret


def _dummy_token(kind: str, nocr: int) -> Token:
    empty = ("",) * (nocr + 1)
    document = Document(ngrams=defaultdict(FreqList))
    if kind == "rr":
        payload = Candidate(suggestion="")
    elif kind == "dm":
        payload = Rankings((Ranking(Candidate(suggestion=""), 0.0),))
    elif kind == "ms":
        payload = Split(tokens=(Token(empty),), candidates=(Candidate(suggestion=""),))
    elif kind == "ff":
        payload = None
    else:
        raise ConfigurationError(f"bad classifier kind: {kind}")
    return Token(empty, document=document, payload=payload)


# =============================================================================
# HELPERS
# =============================================================================


def _candidate(t: Token) -> Candidate:
    payload = t.payload
    if isinstance(payload, Candidate):
        return payload
    if isinstance(payload, Rankings):
        return payload.rankings[0].candidate
    if isinstance(payload, Split) and payload.candidates:
        return payload.candidates[0]
    raise PayloadError(f"token {t.id or t}: no candidate in payload")


def _lm(t: Token, name: str) -> FreqList:
    if t.document is None:
        raise ConfigurationError(f"token {t.id or t} has no document")
    try:
        return t.document.ngrams[name]
    except KeyError:
        raise ConfigurationError(f"no language model named {name!r}") from None


def _single_arg(name: str, args: list[str]) -> str:
    if len(args) != 1:
        raise ConfigurationError(f"{name}: expected one argument, got {args}")
    return args[0]


def average_pos_pattern_conf(chars: tuple[Char, ...], p: Pattern) -> float:
    """Mean confidence of the master characters a pattern touches."""
    if not chars or p.pos < 0:
        return 0.0
    if not p.right:  # deletion
        if p.pos == 0:
            return chars[0].conf
        if p.pos >= len(chars):
            return chars[-1].conf
        return (chars[p.pos].conf + chars[p.pos - 1].conf) / 2.0
    if p.pos >= len(chars):
        return chars[-1].conf
    confs = [c.conf for c in chars[p.pos : p.pos + len(p.right)]]
    return sum(confs) / len(confs)


def _log(val: float) -> float:
    return math.log(val) if val > 0 else -math.inf


# =============================================================================
# OCR FEATURES
# =============================================================================


@_feature("OCRTokenLen")
def ocr_token_len(t: Token, i: int, n: int) -> float | None:
    return float(len(t.master))


@_feature("AgreeingOCRs")
def agreeing_ocrs(t: Token, i: int, n: int) -> float | None:
    """Number of secondary OCRs that agree with the master OCR."""
    if i != 0 or n == 1:
        return None
    return float(sum(1 for j in range(1, n) if t.tokens[j] == t.master))


@_factory("OCRUnigramFreq")
def mk_ocr_unigram_freq(args: list[str]) -> FeatureFunc:
    """Relative frequency of the OCR reading in the document or a named list."""
    if not args:
        return lambda t, i, n: t.document.unigram(t.tokens[i])
    lm = _single_arg("OCRUnigramFreq", args)
    return lambda t, i, n: _lm(t, lm).relative(t.tokens[i])


@_factory("OCRTrigramFreq")
def mk_ocr_trigram_freq(args: list[str]) -> FeatureFunc:
    lm = _single_arg("OCRTrigramFreq", args)

    def f(t: Token, i: int, n: int) -> float | None:
        prod = 1.0
        for tri in _trigram_freqs(_lm(t, lm), t.tokens[i]):
            prod *= tri
        return prod

    return f


@_factory("OCRMaxTrigramFreq")
def mk_ocr_max_trigram_freq(args: list[str]) -> FeatureFunc:
    lm = _single_arg("OCRMaxTrigramFreq", args)
    return lambda t, i, n: max(_trigram_freqs(_lm(t, lm), t.tokens[i]), default=0.0)


@_factory("OCRMinTrigramFreq")
def mk_ocr_min_trigram_freq(args: list[str]) -> FeatureFunc:
    lm = _single_arg("OCRMinTrigramFreq", args)
    return lambda t, i, n: min(_trigram_freqs(_lm(t, lm), t.tokens[i]), default=1.0)


def _trigram_freqs(lm: FreqList, s: str) -> list[float]:
    freqs: list[float] = []
    lm.each_trigram(s, freqs.append)
    return freqs


@_feature("OCRMaxCharConf")
def ocr_max_char_conf(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return max((c.conf for c in t.chars), default=0.0)


@_feature("OCRMinCharConf")
def ocr_min_char_conf(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return min((c.conf for c in t.chars), default=1.0)


@_feature("OCRLevDist", "OCRLevenshteinDist")
def ocr_lev_dist(t: Token, i: int, n: int) -> float | None:
    """Levenshtein distance of a secondary OCR to the master OCR."""
    if i == 0:
        return None
    return float(Levenshtein.distance(t.tokens[i], t.master))


# =============================================================================
# CANDIDATE FEATURES
# =============================================================================


@_feature("CandidateProfilerWeight")
def candidate_profiler_weight(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return float(_candidate(t).weight)


@_factory("CandidateUnigramFreq")
def mk_candidate_unigram_freq(args: list[str]) -> FeatureFunc:
    if not args:

        def doc(t: Token, i: int, n: int) -> float | None:
            if i != 0:
                return None
            return t.document.unigram(_candidate(t).suggestion)

        return doc
    lm = _single_arg("CandidateUnigramFreq", args)

    def ext(t: Token, i: int, n: int) -> float | None:
        if i != 0:
            return None
        return _lm(t, lm).relative(_candidate(t).suggestion)

    return ext


@_factory("CandidateTrigramFreq")
def mk_candidate_trigram_freq(args: list[str]) -> FeatureFunc:
    """Product of the candidate's trigram frequencies."""
    lm = _single_arg("CandidateTrigramFreq", args)

    def f(t: Token, i: int, n: int) -> float | None:
        if i != 0:
            return None
        prod = 1.0
        for tri in _trigram_freqs(_lm(t, lm), _candidate(t).suggestion):
            prod *= tri
        return prod

    return f


@_factory("CandidateTrigramFreqLog")
def mk_candidate_trigram_freq_log(args: list[str]) -> FeatureFunc:
    """Sum of the logarithms of the candidate's trigram frequencies."""
    lm = _single_arg("CandidateTrigramFreqLog", args)

    def f(t: Token, i: int, n: int) -> float | None:
        if i != 0:
            return None
        return sum(_log(tri) for tri in _trigram_freqs(_lm(t, lm), _candidate(t).suggestion))

    return f


@_factory("CandidateMaxTrigramFreq")
def mk_candidate_max_trigram_freq(args: list[str]) -> FeatureFunc:
    lm = _single_arg("CandidateMaxTrigramFreq", args)

    def f(t: Token, i: int, n: int) -> float | None:
        if i != 0:
            return None
        return max(_trigram_freqs(_lm(t, lm), _candidate(t).suggestion), default=0.0)

    return f


@_factory("CandidateMinTrigramFreq")
def mk_candidate_min_trigram_freq(args: list[str]) -> FeatureFunc:
    lm = _single_arg("CandidateMinTrigramFreq", args)

    def f(t: Token, i: int, n: int) -> float | None:
        if i != 0:
            return None
        return min(_trigram_freqs(_lm(t, lm), _candidate(t).suggestion), default=1.0)

    return f


@_feature("CandidateAgreeingOCR")
def candidate_agreeing_ocr(t: Token, i: int, n: int) -> float | None:
    """Number of OCR readings equal to the candidate."""
    if i != 0:
        return None
    suggestion = _candidate(t).suggestion
    return float(sum(1 for j in range(n) if t.tokens[j] == suggestion))


def _pattern_conf(patterns: tuple[Pattern, ...], t: Token, log: bool) -> float:
    if not patterns:
        return 0.0
    if log:
        return sum(_log(average_pos_pattern_conf(t.chars, p)) for p in patterns)
    prod = 1.0
    for p in patterns:
        prod *= average_pos_pattern_conf(t.chars, p)
    return prod


@_feature("CandidateOCRPatternConf")
def candidate_ocr_pattern_conf(t: Token, i: int, n: int) -> float | None:
    """Product of the master character confidences under the candidate's OCR patterns."""
    if i != 0:
        return None
    return _pattern_conf(_candidate(t).ocr_patterns, t, log=False)


@_feature("CandidateOCRPatternConfLog")
def candidate_ocr_pattern_conf_log(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return _pattern_conf(_candidate(t).ocr_patterns, t, log=True)


@_feature("CandidateHistPatternConf")
def candidate_hist_pattern_conf(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return _pattern_conf(_candidate(t).hist_patterns, t, log=False)


@_feature("CandidateHistPatternConfLog")
def candidate_hist_pattern_conf_log(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return _pattern_conf(_candidate(t).hist_patterns, t, log=True)


@_feature("CandidateLevDist", "CandidateLevenshteinDist")
def candidate_lev_dist(t: Token, i: int, n: int) -> float | None:
    """Profiler distance for the master OCR, Levenshtein distance for the others."""
    candidate = _candidate(t)
    if i == 0:
        return float(candidate.distance)
    return float(Levenshtein.distance(t.tokens[i], candidate.suggestion))


@_feature("CandidateLen")
def candidate_len(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return float(len(_candidate(t).suggestion))


@_feature("CandidateMatchesOCR")
def candidate_matches_ocr(t: Token, i: int, n: int) -> float | None:
    return bool_value(_candidate(t).suggestion == t.tokens[i])


# =============================================================================
# RANKING AND DOCUMENT FEATURES
# =============================================================================


@_feature("RankingConf")
def ranking_conf(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return t.payload_as(Rankings).top().prob


@_feature("RankingConfDiffToNext")
def ranking_conf_diff_to_next(t: Token, i: int, n: int) -> float | None:
    """Probability margin of the top ranked candidate over the next one (or 0)."""
    if i != 0:
        return None
    rankings = t.payload_as(Rankings).rankings
    following = rankings[1].prob if len(rankings) > 1 else 0.0
    return rankings[0].prob - following


@_feature("RankingCandidateConfDiffToNext")
def ranking_candidate_conf_diff_to_next(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    rankings = t.payload_as(Rankings).rankings
    following = rankings[1].candidate.weight if len(rankings) > 1 else 0.0
    return rankings[0].candidate.weight - following


@_feature("DocumentLexicality")
def document_lexicality(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return t.document.lexicality


@_feature("FFNumberOfCandidates")
def number_of_candidates(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    interp = t.interpretation()
    return float(len(interp.candidates)) if interp is not None else 0.0


# =============================================================================
# SPLIT FEATURES
# =============================================================================


@_feature("SplitOtherOCR")
def split_other_ocr(t: Token, i: int, n: int) -> float | None:
    """1 if the secondary OCR reads the same span for every merged token."""
    if i == 0:
        return None
    ts = t.payload_as(Split).tokens
    return bool_value(all(ts[j - 1].tokens[i] == ts[j].tokens[i] for j in range(1, len(ts))))


@_feature("SplitNumShortTokens")
def split_num_short_tokens(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return float(sum(1 for tx in t.payload_as(Split).tokens if len(tx.master) < 4))


@_feature("SplitUnigramTokenConf")
def split_unigram_token_conf(t: Token, i: int, n: int) -> float | None:
    """Sum of the log document frequencies of the merged tokens."""
    if i != 0:
        return None
    return sum(_log(t.document.unigram(tx.master)) for tx in t.payload_as(Split).tokens)


@_feature("SplitIsLexiconEntry")
def split_is_lexicon_entry(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return bool_value(any(c.is_lexicon_entry() for c in t.payload_as(Split).candidates))


@_feature("SplitLen")
def split_len(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return float(len(t.payload_as(Split).tokens))


@_feature("SplitNumberOfLexiconEntries")
def split_number_of_lexicon_entries(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return float(sum(1 for tx in t.payload_as(Split).tokens if tx.contains_lexicon_entry()))


# =============================================================================
# LINE FEATURES
# =============================================================================


@_feature("IsStartOfLine")
def is_start_of_line(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return bool_value(t.sol)


@_feature("IsEndOfLine")
def is_end_of_line(t: Token, i: int, n: int) -> float | None:
    if i != 0:
        return None
    return bool_value(t.eol)
