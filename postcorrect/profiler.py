"""
Profilers: the source of correction candidates.

A profiler maps every distinct master reading of a document to the
candidates it might be a misrecognition of, together with the OCR error
patterns that explain the reading. The profiler used by the pipeline is
any object implementing the :class:`Profiler` protocol.

SpellcheckProfiler profiles in-process with a pyspellchecker word list.
CachedProfiler stores the profile of every document group as gzipped
JSON so that training and evaluation runs over the same documents
profile them only once.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
import os
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from rapidfuzz.distance import Levenshtein

from postcorrect.exceptions import ProfileError
from postcorrect.models import (
    Candidate,
    Interpretation,
    Pattern,
    Profile,
    Token,
    profile_from_dict,
    profile_to_dict,
)

if TYPE_CHECKING:
    from spellchecker import SpellChecker

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_PROFILE_SUFFIX = "-profile.json.gz"
DEFAULT_MAX_CANDIDATES = 10
UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]+")


class Profiler(Protocol):
    """Produces the profile for the tokens of one document."""

    async def profile(self, tokens: Sequence[Token]) -> Profile: ...


# =============================================================================
# PERSISTENCE
# =============================================================================


def read_profile(path: Path | str) -> Profile:
    """
    Read a gzipped JSON profile.

    Raises:
        ProfileError: If the file is not a valid profile.
    """
    path = Path(path)
    try:
        with gzip.open(path, "rt", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ProfileError(f"cannot read profile {path}: {e}") from e
    return profile_from_dict(data)


def write_profile(path: Path | str, profile: Profile) -> None:
    """
    Write ``profile`` as gzipped JSON, creating parent directories.

    Raises:
        OSError: If the file cannot be written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, "wt", encoding="utf-8") as f:
        json.dump(profile_to_dict(profile), f, ensure_ascii=False)


def default_cache_dir() -> Path:
    """The user cache directory for postcorrect."""
    base = os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(base) / "postcorrect"


def ocr_patterns(suggestion: str, ocr: str) -> tuple[Pattern, ...]:
    """
    Edit operations turning ``suggestion`` into ``ocr``.

    Pattern positions refer to the OCR reading.
    """
    patterns = []
    for op in Levenshtein.editops(suggestion, ocr):
        if op.tag == "replace":
            patterns.append(Pattern(suggestion[op.src_pos], ocr[op.dest_pos], op.dest_pos))
        elif op.tag == "delete":
            patterns.append(Pattern(suggestion[op.src_pos], "", op.dest_pos))
        else:
            patterns.append(Pattern("", ocr[op.dest_pos], op.dest_pos))
    return tuple(patterns)


# =============================================================================
# PROFILERS
# =============================================================================


@dataclass
class SpellcheckProfiler:
    """
    Lexicon profiler backed by pyspellchecker.

    Readings found in the word list become lexicon entries: a single
    candidate without patterns. Unknown readings get the word list's
    suggestions within ``max_distance`` edits, weighted by their relative
    usage frequency. Readings without suggestions are left out of the
    profile.

    Example:
        >>> profiler = SpellcheckProfiler(language="en")
        >>> profile = await profiler.profile(tokens)
        >>> profile["tbe"].candidates[0].suggestion
        'the'
    """

    language: str = "en"
    max_distance: int = 2
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    spell: SpellChecker | None = field(default=None, repr=False)

    def __post_init__(self):
        """Load the word list."""
        if self.spell is None:
            from spellchecker import SpellChecker

            self.spell = SpellChecker(language=self.language, distance=self.max_distance)

    async def profile(self, tokens: Sequence[Token]) -> Profile:
        counts = Counter(t.master for t in tokens if t.master)
        return await asyncio.to_thread(self._profile, counts)

    def _profile(self, counts: Counter[str]) -> Profile:
        profile: Profile = {}
        for ocr, n in counts.items():
            candidates = self._candidates(ocr)
            if candidates:
                profile[ocr] = Interpretation(ocr=ocr, n=n, candidates=candidates)
        logger.debug("Profiled %d of %d distinct readings", len(profile), len(counts))
        return profile

    def _candidates(self, ocr: str) -> list[Candidate]:
        if ocr in self.spell:
            return [Candidate(suggestion=ocr, modern=ocr, dictionary=self.language, weight=1.0)]
        suggestions = set(self.spell.candidates(ocr) or ())
        suggestions.discard(ocr)
        freqs = {s: self.spell.word_usage_frequency(s) for s in suggestions}
        total = sum(freqs.values())
        ranked = sorted(suggestions, key=lambda s: (-freqs[s], s))[: self.max_candidates]
        return [
            Candidate(
                suggestion=s,
                modern=s,
                dictionary=self.language,
                distance=Levenshtein.distance(s, ocr),
                weight=freqs[s] / total if total else 0.0,
                ocr_patterns=ocr_patterns(s, ocr),
            )
            for s in ranked
        ]


@dataclass
class StaticProfiler:
    """Serves readings from a precomputed profile."""

    table: Profile = field(default_factory=dict)

    async def profile(self, tokens: Sequence[Token]) -> Profile:
        counts = Counter(t.master for t in tokens)
        return {
            ocr: Interpretation(ocr=ocr, n=n, candidates=list(self.table[ocr].candidates))
            for ocr, n in counts.items()
            if ocr in self.table
        }


@dataclass
class CachedProfiler:
    """
    Cache the profiles another profiler produces, one file per document group.

    A failing cache write is logged and the fresh profile is used anyway.
    """

    profiler: Profiler
    cache_dir: Path = field(default_factory=default_cache_dir)
    suffix: str = DEFAULT_PROFILE_SUFFIX

    def path(self, group: str) -> Path:
        name = UNSAFE_FILENAME_CHARS.sub("_", group.strip("/")) or "default"
        return Path(self.cache_dir) / f"{name}{self.suffix}"

    async def profile(self, tokens: Sequence[Token]) -> Profile:
        group = tokens[0].group if tokens else ""
        path = self.path(group)
        if path.exists():
            logger.info("Reading cached profile %s", path)
            return await asyncio.to_thread(read_profile, path)
        profile = await self.profiler.profile(tokens)
        try:
            await asyncio.to_thread(write_profile, path, profile)
            logger.info("Cached profile of %s in %s", group, path)
        except OSError as e:
            logger.warning("Could not cache profile in %s: %s", path, e)
        return profile
