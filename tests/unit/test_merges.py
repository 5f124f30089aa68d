"""Tests for merge synthesis from adjacent tokens."""

import asyncio

import pytest
from conftest import lexicon_entry, make_line, make_token, source

from postcorrect.models import Split
from postcorrect.stream import (
    connect_merges_with_gt,
    connect_split_candidates,
    generate_splits,
    merge_tokens,
    pipe,
    tee,
)
from postcorrect.stream.merges import EMPTY_MERGE_MARKER, same_gt


class TestMergeTokens:
    """Tests for merge_tokens."""

    def test_concatenates_readings(self, document):
        merged = merge_tokens([make_token("ca", "c", document=document, id="1"), make_token("t", "t", id="2")])
        assert merged.tokens == ("cat", "ct")
        assert merged.id == "1+2"
        assert merged.document is document

    def test_skips_repeated_secondary_spans(self, document):
        """Constituents of an OCR merge share one span that is used once."""
        line = make_line(document, ("n", "nuchter"), ("uch", "nuchter"), ("ter", "nuchter"))
        merged = merge_tokens(line)
        assert merged.master == "nuchter"
        assert merged.gt == "nuchter"

    def test_master_is_never_deduplicated(self):
        merged = merge_tokens([make_token("ab", "x"), make_token("ab", "y")])
        assert merged.master == "abab"

    def test_empty_last_reading(self):
        merged = merge_tokens([make_token("ab", "ab"), make_token("c", "")])
        assert merged.master == "abc"
        assert merged.gt == "ab" + EMPTY_MERGE_MARKER

    def test_chars_and_line_markers(self, document):
        line = make_line(document, ("a", "a"), ("b", "b"))
        merged = merge_tokens(line)
        assert len(merged.chars) == 2
        assert merged.sol and merged.eol


class TestGenerateSplits:
    """Tests for generate_splits."""

    def test_same_gt(self, document):
        line = make_line(document, ("a", "x"), ("b", "x"), ("c", "y"))
        assert same_gt(line[:2])
        assert not same_gt(line)

    def test_longest_valid_window_wins(self, document):
        line = make_line(document, ("a", "a"), ("b", "a"), ("c", "b"))
        batches = generate_splits(line)
        merged = [t for batch in batches for t in batch]
        assert [t.master for t in merged] == ["abc", "ab", "bc"]
        assert [t.payload.valid for t in merged] == [False, True, False]

    def test_shorter_windows_after_valid_one_are_invalid(self, document):
        line = make_line(document, ("a", "w"), ("b", "w"), ("c", "w"))
        merged = [t for batch in generate_splits(line) for t in batch]
        assert [(t.master, t.payload.valid) for t in merged] == [
            ("abc", True),
            ("ab", False),
            ("bc", True),
        ]

    def test_one_batch_per_start(self, document):
        line = make_line(document, ("a", "a"), ("b", "b"), ("c", "c"), ("d", "d"))
        assert [len(batch) for batch in generate_splits(line)] == [3, 2, 1]

    def test_single_token_line(self, document):
        assert generate_splits(make_line(document, ("a", "a"))) == []

    def test_max_window(self, document):
        line = make_line(document, ("a", "a"), ("b", "b"), ("c", "c"))
        merged = [t for batch in generate_splits(line, max_window=2) for t in batch]
        assert [t.master for t in merged] == ["ab", "bc"]

    def test_split_holds_merged_tokens(self, document):
        line = make_line(document, ("a", "a"), ("b", "b"))
        (batch,) = generate_splits(line)
        assert batch[0].payload == Split(tokens=tuple(line), valid=False)


class TestMergeStages:
    """Tests for the merge stages."""

    @pytest.mark.asyncio
    async def test_connect_merges_with_gt(self, document):
        lines = make_line(document, ("ca", "cat"), ("t", "cat"), ("sat", "sat")) + make_line(
            document, ("a", "a"), ("b", "b"), line="l2"
        )
        got = []
        await asyncio.wait_for(
            pipe(source(*lines), connect_merges_with_gt(), tee(got.append)), timeout=5
        )
        assert [t.master for t in got] == ["catsat", "cat", "tsat", "ab"]
        assert [t.payload.valid for t in got] == [False, True, False, False]

    @pytest.mark.asyncio
    async def test_connect_split_candidates(self, document):
        document.connect_profile({"cat": lexicon_entry("cat")})
        line = make_line(document, ("ca", "cat"), ("t", "cat"), ("sat", "sat"))
        got = []
        await asyncio.wait_for(
            pipe(source(*line), connect_merges_with_gt(), connect_split_candidates(), tee(got.append)),
            timeout=5,
        )
        assert [t.master for t in got] == ["cat"]
        split = got[0].payload_as(Split)
        assert split.valid
        assert [c.suggestion for c in split.candidates] == ["cat"]
