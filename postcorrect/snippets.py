"""
Source stages reading line snippets from directories.

A snippet is a single text line stored in one file per reading: the
master OCR file ends in the first extension, the secondary OCR and
ground-truth files share its name with the other extensions, e.g.
``0001.bin.png.tsv``, ``0001.calamari.txt`` and ``0001.gt.txt``. Each
directory is one document.

Supported formats, chosen by the file extension:

- ``.txt``: the first line of the file
- ``.json``: the ``voted`` prediction of calamari OCR output
- anything else: TSV lines ``char<TAB>confidence``; a line holding only
  ``<TAB>confidence`` is a space

Example:
    >>> ext = Extensions([".tsv", ".calamari.txt", ".gt.txt"])
    >>> await pipe(ext.tokenize("book1", "book2"), normalize(), tee(print))
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from postcorrect.align import align
from postcorrect.exceptions import PipelineError
from postcorrect.models import Char, Document, Token, chars_to_str, mean_conf
from postcorrect.stream.engine import Stage, combine, each_token, send_tokens, stage

if TYPE_CHECKING:
    from postcorrect.stream.channel import HandOff

logger = logging.getLogger(__name__)


# =============================================================================
# FILE FORMATS
# =============================================================================


def _append_char(chars: list[Char], c: Char) -> None:
    if chars and chars[-1].char.isspace() and c.char.isspace():
        return
    chars.append(c)


def _trim(chars: list[Char]) -> list[Char]:
    i, j = 0, len(chars)
    while i < j and chars[i].char.isspace():
        i += 1
    while j > i and chars[j - 1].char.isspace():
        j -= 1
    return chars[i:j]


def read_txt(path: Path) -> list[Char]:
    chars: list[Char] = []
    with open(path, encoding="utf-8") as f:
        for c in f.readline().rstrip("\r\n"):
            _append_char(chars, Char(c))
    return _trim(chars)


def read_tsv(path: Path) -> list[Char]:
    """
    Read ``char<TAB>conf`` lines.

    Raises:
        ValueError: On a line that is not ``text<TAB>conf``.
    """
    chars: list[Char] = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.rstrip("\r\n")
            text, sep, conf = line.rpartition("\t")
            if not sep:
                raise ValueError(f"{path}:{lineno}: bad line {line!r}")
            try:
                value = float(conf)
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: bad confidence {conf!r}") from e
            for c in text or " ":
                _append_char(chars, Char(c, value))
    return _trim(chars)


def read_calamari_json(path: Path) -> list[Char]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    chars: list[Char] = []
    for prediction in data.get("predictions", []):
        if prediction.get("id") != "voted":
            continue
        for pos in prediction.get("positions", []):
            if not pos.get("chars"):
                continue
            best = pos["chars"][0]
            for c in best.get("char", ""):
                chars.append(Char(c, best.get("probability", 0.0)))
    return chars


def read_snippet(path: Path) -> list[Char]:
    if path.suffix == ".txt":
        return read_txt(path)
    if path.suffix == ".json":
        return read_calamari_json(path)
    return read_tsv(path)


# =============================================================================
# STAGES
# =============================================================================


class Extensions:
    """File extensions of the master OCR, secondary OCRs and ground truth."""

    def __init__(self, exts: list[str] | tuple[str, ...]):
        if not exts:
            raise PipelineError("at least the master OCR extension is required")
        self.exts = tuple(exts)

    def tokenize(self, *dirs: str | Path) -> Stage:
        """Read and tokenize all snippets of ``dirs``."""
        return combine(self.read_lines(*dirs), self.tokenize_lines())

    def read_lines(self, *dirs: str | Path) -> Stage:
        """Source stage emitting one line token per snippet, one document per directory."""

        @stage("read-lines")
        async def run(inp: HandOff | None, out: HandOff | None) -> None:
            for d in dirs:
                lines = await asyncio.to_thread(self.read_dir, Path(d))
                await send_tokens(out, *lines)

        return run

    def read_dir(self, base: Path) -> list[Token]:
        """All snippet lines below ``base`` in path order, sharing one Document."""
        logger.info("Reading snippets from %s", base)
        document = Document(group=str(base))
        lines = []
        for root, dirs, files in os.walk(base):
            dirs.sort()
            for name in sorted(files):
                if name.endswith(self.exts[0]):
                    lines.append(self.read_line(document, Path(root) / name))
        logger.debug("Read %d lines from %s", len(lines), base)
        return lines

    def read_line(self, document: Document, path: Path) -> Token:
        stem = str(path)[: -len(self.exts[0])]
        readings = [read_snippet(path)]
        for ext in self.exts[1:]:
            readings.append(read_snippet(Path(stem + ext)))
        return Token(
            tokens=tuple(chars_to_str(chars) for chars in readings),
            confs=tuple(mean_conf(chars) for chars in readings),
            chars=tuple(readings[0]),
            document=document,
            file=str(path),
            group=document.group,
            id=path.name,
        )

    def tokenize_lines(self) -> Stage:
        """Split every line token into aligned word tokens."""

        @stage("tokenize-lines")
        async def run(inp: HandOff | None, out: HandOff | None) -> None:
            async def fn(line: Token) -> None:
                await send_tokens(out, *tokenize_line(line))

            await each_token(inp, fn)

        return run


def tokenize_line(line: Token) -> list[Token]:
    """Align the readings of ``line`` and cut it into word tokens."""
    rows = align(line.master, *line.tokens[1:])
    ret = []
    for i, row in enumerate(rows):
        master = row[0]
        chars = line.chars[master.begin : master.end]
        ret.append(
            Token(
                tokens=tuple(str(pos) for pos in row),
                confs=line.confs,
                chars=chars,
                document=line.document,
                file=line.file,
                group=line.group,
                id=f"{line.id}:{i + 1}",
                sol=i == 0,
                eol=i == len(rows) - 1,
            )
        )
    return ret
