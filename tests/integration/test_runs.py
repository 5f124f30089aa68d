"""
End-to-end tests: snippet directories through training, evaluation and correction.

These tests use a StaticProfiler so that no word list has to be loaded.
"""

import asyncio

import pytest
from conftest import lexicon_entry

from postcorrect import cli
from postcorrect.config import DMSettings, MSSettings, PostCorrectConfig, TrainingSettings
from postcorrect.evaluation import TokenStats
from postcorrect.exceptions import ConfigurationError
from postcorrect.model import read_model
from postcorrect.models import Candidate, Correction, Interpretation, Pattern
from postcorrect.profiler import StaticProfiler
from postcorrect.runs import run_correction, run_evaluation, run_training

EXTS = [".ocr.txt", ".gt.txt"]


@pytest.fixture
def config(tmp_path):
    return PostCorrectConfig(
        model=str(tmp_path / "model.json.gz"),
        rr=TrainingSettings(features=["CandidateProfilerWeight", "CandidateLevDist"], ntrain=200),
        dm=DMSettings(features=["RankingConf", "RankingConfDiffToNext"], ntrain=50, filter="cautious"),
        ms=MSSettings(features=["SplitLen", "SplitIsLexiconEntry"], ntrain=200),
        ff=TrainingSettings(features=["FFNumberOfCandidates"], ntrain=50),
    )


@pytest.fixture
def profile(tbe_profile):
    """Profile with the OCR error ``tbis`` and some lexicon entries."""
    return {
        **tbe_profile,
        "tbis": Interpretation(
            ocr="tbis",
            n=2,
            candidates=[
                Candidate(
                    suggestion="this",
                    modern="this",
                    distance=1,
                    weight=0.8,
                    ocr_patterns=(Pattern("h", "b", 1),),
                ),
                Candidate(
                    suggestion="tris",
                    modern="tris",
                    distance=2,
                    weight=0.2,
                    ocr_patterns=(Pattern("r", "b", 1),),
                ),
            ],
        ),
        "house": lexicon_entry("house"),
        "stood": lexicon_entry("stood"),
        "word": lexicon_entry("word"),
        "form": lexicon_entry("form"),
    }


@pytest.fixture
def book(snippet_dir):
    return snippet_dir(
        {
            "0001": ("Tbis house stood.", "This house stood."),
            "0002": ("tbis word", "this word"),
        }
    )


def run(coro):
    return asyncio.run(asyncio.wait_for(coro, timeout=30))


class TestRankingAndDecision:
    """Training the rr and dm classifiers and correcting with them."""

    def test_train_evaluate_correct(self, config, book, profile):
        profiler = StaticProfiler(profile)
        stats = TokenStats(gt=True)

        model = run(run_training("rr", config, [book], EXTS, profiler=profiler, stats=stats))
        _, fs = model.get("rr", 1)
        assert fs.names == config.rr.features
        assert stats.tokens == 4
        assert read_model(config.model).get("rr", 1)[1].names == config.rr.features

        metrics = run(run_evaluation("rr", config, [book], EXTS, profiler=profiler))
        assert metrics.total == 4

        run(run_training("dm", config, [book], EXTS, profiler=profiler))
        corrected = run(run_correction(config, [book], EXTS, profiler=profiler))
        assert [t.id for t in corrected] == ["0001.ocr.txt:1", "0002.ocr.txt:1"]
        assert all(t.payload_as(Correction).candidate.suggestion == "this" for t in corrected)
        assert corrected[0].cor in {"Tbis", "This"}
        assert corrected[1].cor in {"tbis", "this"}

    def test_short_tokens_are_dropped(self, config, snippet_dir, profile):
        """Tokens below four characters are never profiled or trained on."""
        book = snippet_dir({"0001": ("tbe tbis cat", "the this cat")}, name="short")
        profiler = StaticProfiler(profile)
        stats = TokenStats(gt=True)

        run(run_training("rr", config, [book], EXTS, profiler=profiler, stats=stats))
        assert stats.tokens == 2
        metrics = run(run_evaluation("rr", config, [book], EXTS, profiler=profiler))
        assert metrics.total == 2

    def test_dm_needs_rr(self, config, book, profile):
        with pytest.raises(ConfigurationError, match="no rr classifier"):
            run(run_training("dm", config, [book], EXTS, profiler=StaticProfiler(profile)))

    def test_model_required(self, book):
        with pytest.raises(ConfigurationError, match="no model file"):
            run(run_training("rr", PostCorrectConfig(), [book], EXTS))


class TestFalseFriends:
    """Training the ff classifier on lexicon entries."""

    def test_train_and_evaluate(self, config, snippet_dir, profile):
        book = snippet_dir({"0001": ("tbis house form", "this house from")}, name="friends")
        profiler = StaticProfiler(profile)
        stats = TokenStats(gt=True)

        model = run(run_training("ff", config, [book], EXTS, profiler=profiler, stats=stats))
        assert stats.tokens == 2
        assert stats.lexicon_entries == 2
        assert model.get("ff", 1)[1].names == ["FFNumberOfCandidates"]

        metrics = run(run_evaluation("ff", config, [book], EXTS, profiler=profiler))
        assert metrics.total == 2


class TestMergeSplit:
    """Training the ms classifier."""

    @pytest.fixture
    def merge_profile(self):
        return {
            "cat": lexicon_entry("cat"),
            "catsat": Interpretation(
                ocr="catsat",
                candidates=[Candidate(suggestion="cat sat", ocr_patterns=(Pattern(" ", "", 3),))],
            ),
        }

    def test_train_and_evaluate(self, config, snippet_dir, merge_profile):
        """Short tokens take part in merges."""
        book = snippet_dir({"0001": ("ca t sat", "cat sat")}, name="merges")
        profiler = StaticProfiler(merge_profile)
        stats = TokenStats(gt=True)

        model = run(run_training("ms", config, [book], EXTS, profiler=profiler, stats=stats))
        assert (stats.merges, stats.valid_merges) == (2, 1)
        lr, _ = model.get("ms", 1)
        assert lr.weights is not None

        metrics = run(run_evaluation("ms", config, [book], EXTS, profiler=profiler))
        assert metrics.total == 2


class TestCLI:
    """Tests for the command line entry point."""

    def test_align(self, capsys):
        assert cli.main(["align", "n uch ter in", "nuchter in"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "n | nuchter"
        assert out[-1] == "in | in"

    def test_ff_is_a_training_kind(self):
        args = cli.build_parser().parse_args(["train", "ff", "-e", ".ocr.txt", "book"])
        assert args.kind == "ff"

    def test_error_exit_code(self, book, capsys):
        assert cli.main(["train", "rr", "-e", ".ocr.txt", "-e", ".gt.txt", str(book)]) == 1
        assert "no model file configured" in capsys.readouterr().err
