"""Tests for the profile, candidate, ranking and correction stages."""

import asyncio
import math
from dataclasses import replace

import numpy as np
import pytest
from conftest import make_token, source

from postcorrect.features import FeatureSet
from postcorrect.ml import LogisticRegression
from postcorrect.models import Candidate, Char, Correction, Rankings
from postcorrect.profiler import StaticProfiler
from postcorrect.stream import (
    add_short_tokens_to_profile,
    connect_candidates,
    connect_corrections,
    connect_profile,
    connect_rankings,
    filter_lexicon_entries,
    filter_non_lexicon_entries,
    mark_corrections,
    pipe,
    tee,
)


async def collect(*stages):
    got = []
    await asyncio.wait_for(pipe(*stages, tee(got.append)), timeout=5)
    return got


def sigmoid(z: float) -> float:
    return 1.0 / (1.0 + math.exp(-z))


@pytest.fixture
def profiled(document, tbe_profile):
    """The document with ``tbe_profile`` connected."""
    document.connect_profile(tbe_profile)
    return document


class TestProfileStages:
    """Tests for connecting profiles."""

    @pytest.mark.asyncio
    async def test_connect_profile(self, document, tbe_profile):
        tokens = [make_token(w, document=document) for w in ("tbe", "cat", "xyz")]
        got = await collect(source(*tokens), connect_profile(StaticProfiler(tbe_profile)))
        assert len(got) == 3
        assert set(document.profile) == {"tbe", "cat"}
        assert document.lexicality == pytest.approx(0.5)
        assert document.ocr_patterns == {"h:b": 0.5, "o:b": 0.5}

    @pytest.mark.asyncio
    async def test_add_short_tokens(self, profiled):
        tokens = [make_token(w, document=profiled) for w in ("of", "xyzzy")]
        await collect(source(*tokens), add_short_tokens_to_profile(3))
        assert profiled.lookup("of").is_lexicon_entry()
        assert profiled.lookup("xyzzy") is None

    @pytest.mark.asyncio
    async def test_lexicon_filters(self, profiled):
        tokens = [make_token(w, document=profiled) for w in ("tbe", "cat")]
        non_lex = await collect(source(*tokens), filter_lexicon_entries())
        lex = await collect(source(*tokens), filter_non_lexicon_entries())
        assert [t.master for t in non_lex] == ["tbe"]
        assert [t.master for t in lex] == ["cat"]


class TestCandidateStages:
    """Tests for candidates, rankings and corrections."""

    @pytest.mark.asyncio
    async def test_one_token_per_candidate(self, profiled):
        tokens = [make_token(w, document=profiled, id=w) for w in ("tbe", "xyz")]
        got = await collect(source(*tokens), connect_candidates())
        assert [t.payload_as(Candidate).suggestion for t in got] == ["the", "toe"]
        assert all(t.id == "tbe" for t in got)

    @pytest.mark.asyncio
    async def test_rankings_sorted_by_probability(self, profiled):
        fs = FeatureSet.from_names(["CandidateProfilerWeight"])
        lr = LogisticRegression(weights=np.array([1.0]))
        tokens = [
            make_token("tbe", "the", document=profiled, id="1"),
            make_token("tbe", "the", document=profiled, id="2"),
        ]
        got = await collect(source(*tokens), connect_candidates(), connect_rankings(lr, fs, 1))
        assert [t.id for t in got] == ["1", "2"]
        rankings = got[0].payload_as(Rankings).rankings
        assert [r.candidate.suggestion for r in rankings] == ["the", "toe"]
        assert rankings[0].prob == pytest.approx(sigmoid(0.8))
        assert rankings[1].prob == pytest.approx(sigmoid(0.2))

    @pytest.mark.asyncio
    async def test_rankings_reorder_candidates(self, profiled):
        fs = FeatureSet.from_names(["CandidateProfilerWeight"])
        lr = LogisticRegression(weights=np.array([-1.0]))
        tokens = [make_token("tbe", "the", document=profiled, id="1")]
        got = await collect(source(*tokens), connect_candidates(), connect_rankings(lr, fs, 1))
        top = got[0].payload_as(Rankings).top()
        assert top.candidate.suggestion == "toe"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("weight,expected", [(10.0, "The,"), (-10.0, "Tbe,")])
    async def test_corrections(self, profiled, weight, expected):
        rank_fs = FeatureSet.from_names(["CandidateProfilerWeight"])
        rank_lr = LogisticRegression(weights=np.array([1.0]))
        dm_fs = FeatureSet.from_names(["RankingConf"])
        dm_lr = LogisticRegression(weights=np.array([weight]))
        t = make_token("tbe", "the", document=profiled, id="1")
        t = replace(t, chars=tuple(Char(c, 0.9) for c in "Tbe,"))
        got = await collect(
            source(t),
            connect_candidates(),
            connect_rankings(rank_lr, rank_fs, 1),
            connect_corrections(dm_lr, dm_fs, 1),
            mark_corrections(0.5),
        )
        (corrected,) = got
        correction = corrected.payload_as(Correction)
        assert correction.candidate.suggestion == "the"
        assert correction.conf == pytest.approx(sigmoid(weight * sigmoid(0.8)))
        assert corrected.cor == expected
