"""
Data models for the post-correction pipeline.

The central type is Token: an immutable bundle of aligned OCR readings
for one word, its provenance, a typed payload and a reference to the
shared Document it belongs to. Payloads form a closed set of variants,
each tagged with a PayloadKind so that stages can declare and check what
flows between them.

Documents are the one piece of shared, mutable state. Each document is
written by its connect stages before its tokens move on; later stages only
read from it.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar, Union

from postcorrect.exceptions import PayloadError, ProfileError
from postcorrect.lm import FreqList

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


# =============================================================================
# CHARACTERS
# =============================================================================


@dataclass(frozen=True)
class Char:
    """A single OCR character with its recognition confidence."""

    char: str
    conf: float = 0.0


def chars_to_str(chars: Iterable[Char]) -> str:
    return "".join(c.char for c in chars)


def chars_confs(chars: Iterable[Char]) -> list[float]:
    return [c.conf for c in chars]


def mean_conf(chars: Iterable[Char]) -> float:
    confs = chars_confs(chars)
    if not confs:
        return 0.0
    return sum(confs) / len(confs)


# =============================================================================
# PROFILE
# =============================================================================


@dataclass(frozen=True)
class Pattern:
    """A rewrite ``left -> right`` at position ``pos`` of the suggestion."""

    left: str
    right: str
    pos: int

    def key(self) -> str:
        return f"{self.left}:{self.right}"

    def to_dict(self) -> dict[str, Any]:
        return {"left": self.left, "right": self.right, "pos": self.pos}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pattern:
        return cls(left=data["left"], right=data["right"], pos=data.get("pos", 0))


class PayloadKind(Enum):
    """The closed set of token payload variants."""

    CANDIDATE = "candidate"
    RANKINGS = "rankings"
    SPLIT = "split"
    CORRECTION = "correction"


@dataclass(frozen=True)
class Candidate:
    """
    A correction candidate proposed by the profiler.

    ``modern`` is the modern spelling the historical ``suggestion`` derives
    from via ``hist_patterns``; ``ocr_patterns`` explain the OCR reading.
    """

    kind: ClassVar[PayloadKind] = PayloadKind.CANDIDATE

    suggestion: str
    modern: str = ""
    dictionary: str = ""
    distance: int = 0
    weight: float = 0.0
    hist_patterns: tuple[Pattern, ...] = ()
    ocr_patterns: tuple[Pattern, ...] = ()

    def is_lexicon_entry(self) -> bool:
        """A candidate without any pattern is the OCR reading itself."""
        return not self.hist_patterns and not self.ocr_patterns

    def to_dict(self) -> dict[str, Any]:
        return {
            "suggestion": self.suggestion,
            "modern": self.modern,
            "dict": self.dictionary,
            "distance": self.distance,
            "weight": self.weight,
            "hist_patterns": [p.to_dict() for p in self.hist_patterns],
            "ocr_patterns": [p.to_dict() for p in self.ocr_patterns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Candidate:
        return cls(
            suggestion=data["suggestion"],
            modern=data.get("modern", ""),
            dictionary=data.get("dict", ""),
            distance=data.get("distance", 0),
            weight=data.get("weight", 0.0),
            hist_patterns=tuple(Pattern.from_dict(p) for p in data.get("hist_patterns", [])),
            ocr_patterns=tuple(Pattern.from_dict(p) for p in data.get("ocr_patterns", [])),
        )


@dataclass
class Interpretation:
    """All candidates the profiler found for one OCR reading."""

    ocr: str
    n: int = 1
    candidates: list[Candidate] = field(default_factory=list)

    def is_lexicon_entry(self) -> bool:
        return len(self.candidates) == 1 and self.candidates[0].is_lexicon_entry()

    def to_dict(self) -> dict[str, Any]:
        return {
            "ocr": self.ocr,
            "n": self.n,
            "candidates": [c.to_dict() for c in self.candidates],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Interpretation:
        return cls(
            ocr=data.get("ocr", ""),
            n=data.get("n", 1),
            candidates=[Candidate.from_dict(c) for c in data.get("candidates", [])],
        )


Profile = dict[str, Interpretation]


def profile_to_dict(profile: Profile) -> dict[str, Any]:
    return {key: interp.to_dict() for key, interp in profile.items()}


def profile_from_dict(data: Any) -> Profile:
    """
    Rebuild a profile from its dictionary form.

    Raises:
        ProfileError: If the data is not a mapping of interpretations.
    """
    if not isinstance(data, dict):
        raise ProfileError(f"profile must be a mapping, got {type(data).__name__}")
    try:
        return {key: Interpretation.from_dict(value) for key, value in data.items()}
    except (KeyError, TypeError, AttributeError) as e:
        raise ProfileError(f"malformed profile entry: {e}") from e


# =============================================================================
# PAYLOADS
# =============================================================================


@dataclass(frozen=True)
class Ranking:
    candidate: Candidate
    prob: float


@dataclass(frozen=True)
class Rankings:
    """Candidates of one token ordered by descending probability."""

    kind: ClassVar[PayloadKind] = PayloadKind.RANKINGS

    rankings: tuple[Ranking, ...]

    def top(self) -> Ranking:
        return self.rankings[0]


@dataclass(frozen=True)
class Split:
    """
    A merged token together with the tokens it was merged from.

    ``valid`` is true when the merge reproduces a single ground-truth word.
    """

    kind: ClassVar[PayloadKind] = PayloadKind.SPLIT

    tokens: tuple[Token, ...]
    candidates: tuple[Candidate, ...] = ()
    valid: bool = False


@dataclass(frozen=True)
class Correction:
    """The decision-maker's verdict on a token's top ranked candidate."""

    kind: ClassVar[PayloadKind] = PayloadKind.CORRECTION

    candidate: Candidate
    conf: float


Payload = Union[Candidate, Rankings, Split, Correction]
P = TypeVar("P", Candidate, Rankings, Split, Correction)


# =============================================================================
# DOCUMENT
# =============================================================================


@dataclass(eq=False)
class Document:
    """
    Shared per-document context.

    Holds the unigram counts of the document's master readings, the
    profile of those readings, the OCR error pattern table derived from the
    profile and references to the global language models.
    """

    group: str = ""
    ngrams: dict[str, FreqList] = field(default_factory=dict)
    unigrams: FreqList = field(default_factory=FreqList)
    profile: Profile = field(default_factory=dict)
    ocr_patterns: dict[str, float] = field(default_factory=dict)
    lexicality: float = 0.0

    def add_unigram(self, s: str) -> None:
        self.unigrams.add(s)

    def unigram(self, s: str) -> float:
        return self.unigrams.relative(s)

    def lookup(self, s: str) -> Interpretation | None:
        return self.profile.get(s)

    def lookup_ocr_pattern(self, pattern: Pattern) -> float:
        return self.ocr_patterns.get(pattern.key(), 0.0)

    def connect_profile(self, profile: Profile) -> None:
        """Install ``profile`` and derive the OCR pattern table and lexicality."""
        self.profile = profile
        counts: dict[str, int] = {}
        total = 0
        lex = 0
        nreadings = 0
        for interp in profile.values():
            nreadings += interp.n
            if interp.is_lexicon_entry():
                lex += interp.n
            for cand in interp.candidates:
                for pat in cand.ocr_patterns:
                    counts[pat.key()] = counts.get(pat.key(), 0) + interp.n
                    total += interp.n
        self.ocr_patterns = {key: n / total for key, n in counts.items()} if total else {}
        self.lexicality = lex / nreadings if nreadings else 0.0
        logger.debug(
            "Document %s: %d profile entries, lexicality %.3f",
            self.group,
            len(profile),
            self.lexicality,
        )


# =============================================================================
# TOKEN
# =============================================================================


@dataclass(frozen=True)
class Token:
    """
    One word position with all of its aligned readings.

    ``tokens[0]`` is the master OCR reading, the following entries are the
    secondary OCR readings and, when present, the last entry is the ground
    truth. Tokens are never modified after being sent downstream; stages
    derive new tokens with ``dataclasses.replace``.
    """

    tokens: tuple[str, ...]
    confs: tuple[float, ...] = ()
    chars: tuple[Char, ...] = ()
    document: Document | None = field(default=None, compare=False, repr=False)
    file: str = ""
    group: str = ""
    id: str = ""
    payload: Payload | None = None
    cor: str = ""
    sol: bool = False
    eol: bool = False

    def __str__(self) -> str:
        return "|".join(self.tokens)

    @property
    def master(self) -> str:
        return self.tokens[0]

    @property
    def gt(self) -> str:
        return self.tokens[-1]

    def with_payload(self, payload: Payload | None) -> Token:
        return replace(self, payload=payload)

    def payload_as(self, kind: type[P]) -> P:
        """
        Return the payload if it is of variant ``kind``.

        Raises:
            PayloadError: If the token carries another variant or none.
        """
        if not isinstance(self.payload, kind):
            got = "nothing" if self.payload is None else self.payload.kind.value
            raise PayloadError(f"token {self.id or self}: expected {kind.kind.value}, got {got}")
        return self.payload

    def interpretation(self) -> Interpretation | None:
        if self.document is None:
            return None
        return self.document.lookup(self.master)

    def is_lexicon_entry(self) -> bool:
        """True if the profiler accepted the master reading as it is."""
        interp = self.interpretation()
        return interp is not None and interp.is_lexicon_entry()

    def contains_lexicon_entry(self) -> bool:
        interp = self.interpretation()
        return interp is not None and any(c.is_lexicon_entry() for c in interp.candidates)


# =============================================================================
# TEXT HELPERS
# =============================================================================


def _is_punct(c: str) -> bool:
    return unicodedata.category(c).startswith("P")


def _strip_punct(s: str) -> tuple[int, int]:
    b, e = 0, len(s)
    while b < e and (_is_punct(s[b]) or s[b].isspace()):
        b += 1
    while e > b and (_is_punct(s[e - 1]) or s[e - 1].isspace()):
        e -= 1
    return b, e


def normalize_text(s: str) -> str:
    """
    Normalize a reading for profiling and comparison.

    Strips leading and trailing punctuation and whitespace, lowercases
    and joins inner whitespace runs with ``_``.

    Example:
        >>> normalize_text(",Der Mann.")
        'der_mann'
    """
    b, e = _strip_punct(s)
    return "_".join(s[b:e].lower().split())


def apply_ocr_to_correction(ocr: str, suggestion: str) -> str:
    """
    Transfer casing and surrounding punctuation of ``ocr`` onto ``suggestion``.

    Every suggestion character is upper cased where the OCR word (without
    its punctuation) has an upper case character at the same position.

    Example:
        >>> apply_ocr_to_correction('"Tbe,', "the")
        '"The,'
    """
    b, e = _strip_punct(ocr)
    prefix, infix, suffix = ocr[:b], ocr[b:e], ocr[e:]
    chars = list(suggestion)
    for i, c in enumerate(infix[: len(chars)]):
        if c.isupper():
            chars[i] = chars[i].upper()
    return prefix + "".join(chars) + suffix
