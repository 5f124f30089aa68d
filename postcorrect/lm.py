"""
Character and token frequency lists.

Frequency lists back the unigram table of every document and the global
character n-gram language models shared by all documents. Trigram lookups
pad the string with ``$`` on both ends.
"""

from __future__ import annotations

import csv
import gzip
import io
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from postcorrect.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TRIGRAM_PAD = "$"


@dataclass
class FreqList:
    """
    Absolute counts of strings together with their total.

    Example:
        >>> freqs = FreqList()
        >>> freqs.add("the", "the", "cat")
        >>> freqs.relative("the")
        0.6666666666666666
    """

    freqs: dict[str, int] = field(default_factory=dict)
    total: int = 0

    def add(self, *strs: str) -> None:
        """Count each string once."""
        for s in strs:
            self.freqs[s] = self.freqs.get(s, 0) + 1
            self.total += 1

    def set(self, s: str, count: int) -> None:
        self.total += count - self.freqs.get(s, 0)
        self.freqs[s] = count

    def absolute(self, s: str) -> int:
        return self.freqs.get(s, 0)

    def relative(self, s: str) -> float:
        """
        Relative frequency of ``s``.

        Unseen strings count as a single occurrence so that products of
        relative frequencies never collapse to zero. An empty list yields 0.
        """
        if self.total == 0:
            return 0.0
        count = self.freqs.get(s)
        if not count:
            return 1.0 / self.total
        return count / self.total

    def each_trigram(self, s: str, fn: Callable[[float], None]) -> None:
        """Call ``fn`` with the relative frequency of every trigram of ``s``."""
        for tri in trigrams(s):
            fn(self.relative(tri))

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "freqs": self.freqs}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FreqList:
        return cls(freqs=dict(data.get("freqs", {})), total=data.get("total", 0))

    def __len__(self) -> int:
        return len(self.freqs)

    def __contains__(self, s: object) -> bool:
        return s in self.freqs


def trigrams(s: str) -> Iterator[str]:
    padded = f"{TRIGRAM_PAD}{s}{TRIGRAM_PAD}"
    for i in range(len(padded) - 2):
        yield padded[i : i + 3]


def trigram(freqs: FreqList, s: str) -> float:
    """Product of the relative frequencies of all trigrams of ``s``."""
    ret = 1.0
    for tri in trigrams(s):
        ret *= freqs.relative(tri)
    return ret


def load_freq_list(path: Path | str) -> FreqList:
    """
    Load a frequency list from a ``count,string`` CSV file.

    Files whose name ends in ``.gz`` are read through gzip.

    Raises:
        ConfigurationError: If a row is malformed.
    """
    path = Path(path)
    opener = gzip.open if path.suffix == ".gz" else open
    freqs = FreqList()
    with opener(path, "rb") as raw:
        reader = csv.reader(io.TextIOWrapper(raw, encoding="utf-8"))
        for lineno, row in enumerate(reader, start=1):
            if not row:
                continue
            if len(row) != 2:
                raise ConfigurationError(f"{path}:{lineno}: expected count,string")
            try:
                count = int(row[0])
            except ValueError as e:
                raise ConfigurationError(f"{path}:{lineno}: bad count {row[0]!r}") from e
            freqs.set(row[1], count)
    logger.info("Loaded %d entries from %s", len(freqs), path)
    return freqs
