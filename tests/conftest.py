"""
Pytest configuration and fixtures for postcorrect tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from postcorrect.models import Candidate, Char, Document, Interpretation, Pattern, Token
from postcorrect.stream import send_tokens, stage


def make_token(
    *readings: str,
    document: Document | None = None,
    id: str = "",
    file: str = "f",
    payload=None,
    sol: bool = False,
    eol: bool = False,
    conf: float = 0.9,
) -> Token:
    """A token with a master character list built from its first reading."""
    return Token(
        tokens=tuple(readings),
        confs=(conf,) * len(readings),
        chars=tuple(Char(c, conf) for c in readings[0]),
        document=document,
        file=file,
        group=document.group if document else "",
        id=id,
        payload=payload,
        sol=sol,
        eol=eol,
    )


def make_line(document: Document, *pairs: tuple[str, str], line: str = "l1") -> list[Token]:
    """The ``(master, gt)`` pairs of one line with ids and line markers."""
    return [
        make_token(
            master,
            gt,
            document=document,
            id=f"{line}:{i + 1}",
            sol=i == 0,
            eol=i == len(pairs) - 1,
        )
        for i, (master, gt) in enumerate(pairs)
    ]


def source(*tokens: Token):
    """Source stage sending ``tokens``."""

    @stage("source")
    async def run(inp, out):
        await send_tokens(out, *tokens)

    return run


def lexicon_entry(word: str, n: int = 1) -> Interpretation:
    return Interpretation(ocr=word, n=n, candidates=[Candidate(suggestion=word, modern=word, weight=1.0)])


@pytest.fixture
def document() -> Document:
    """A fresh, empty document."""
    return Document(group="book")


@pytest.fixture
def tbe_profile() -> dict[str, Interpretation]:
    """Profile with the OCR error ``tbe`` and a few lexicon entries."""
    return {
        "tbe": Interpretation(
            ocr="tbe",
            n=2,
            candidates=[
                Candidate(
                    suggestion="the",
                    modern="the",
                    distance=1,
                    weight=0.8,
                    ocr_patterns=(Pattern("h", "b", 1),),
                ),
                Candidate(
                    suggestion="toe",
                    modern="toe",
                    distance=2,
                    weight=0.2,
                    ocr_patterns=(Pattern("o", "b", 1),),
                ),
            ],
        ),
        "cat": lexicon_entry("cat"),
        "sat": lexicon_entry("sat"),
    }


@pytest.fixture
def snippet_dir(tmp_path: Path):
    """Build a snippet directory from ``{name: (ocr, gt)}``."""

    def build(lines: dict[str, tuple[str, str]], name: str = "book") -> Path:
        base = tmp_path / name
        base.mkdir()
        for stem, (ocr, gt) in lines.items():
            (base / f"{stem}.ocr.txt").write_text(ocr + "\n", encoding="utf-8")
            (base / f"{stem}.gt.txt").write_text(gt + "\n", encoding="utf-8")
        return base

    return build
