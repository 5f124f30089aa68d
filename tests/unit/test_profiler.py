"""Tests for profilers and profile persistence."""

import logging
import threading

import pytest
from conftest import make_token

from postcorrect import profiler as profiler_module
from postcorrect.exceptions import ProfileError
from postcorrect.models import Pattern
from postcorrect.profiler import (
    CachedProfiler,
    SpellcheckProfiler,
    StaticProfiler,
    ocr_patterns,
    read_profile,
    write_profile,
)


class CountingProfiler:
    """Profiler wrapper counting its calls."""

    def __init__(self, profiler):
        self.profiler = profiler
        self.calls = 0

    async def profile(self, tokens):
        self.calls += 1
        return await self.profiler.profile(tokens)


def tokens_of(*words):
    return [make_token(w) for w in words]


class TestOCRPatterns:
    """Tests for ocr_patterns."""

    def test_substitution(self):
        assert ocr_patterns("the", "tbe") == (Pattern("h", "b", 1),)

    def test_insertion_and_deletion(self):
        assert ocr_patterns("cat", "cart") == (Pattern("", "r", 2),)
        assert ocr_patterns("cart", "cat") == (Pattern("r", "", 2),)

    def test_identical(self):
        assert ocr_patterns("the", "the") == ()


class TestStaticProfiler:
    """Tests for StaticProfiler."""

    @pytest.mark.asyncio
    async def test_counts_readings(self, tbe_profile):
        profile = await StaticProfiler(tbe_profile).profile(tokens_of("tbe", "tbe", "xyz"))
        assert set(profile) == {"tbe"}
        assert profile["tbe"].n == 2
        assert profile["tbe"].candidates == tbe_profile["tbe"].candidates


class TestProfilePersistence:
    """Tests for reading and writing profiles."""

    def test_round_trip(self, tmp_path, tbe_profile):
        path = tmp_path / "sub" / "book-profile.json.gz"
        write_profile(path, tbe_profile)
        assert read_profile(path) == tbe_profile

    def test_not_gzip(self, tmp_path):
        path = tmp_path / "bad.json.gz"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ProfileError):
            read_profile(path)

    def test_missing(self, tmp_path):
        with pytest.raises(ProfileError):
            read_profile(tmp_path / "missing.json.gz")


class TestCachedProfiler:
    """Tests for CachedProfiler."""

    @pytest.mark.asyncio
    async def test_profiles_once(self, tmp_path, tbe_profile, document):
        inner = CountingProfiler(StaticProfiler(tbe_profile))
        cached = CachedProfiler(inner, cache_dir=tmp_path)
        tokens = [make_token("tbe", document=document), make_token("cat", document=document)]
        first = await cached.profile(tokens)
        second = await cached.profile(tokens)
        assert inner.calls == 1
        assert first == second
        assert cached.path("book").exists()

    @pytest.mark.asyncio
    async def test_cache_io_runs_in_worker_threads(self, tmp_path, tbe_profile, monkeypatch):
        threads = []

        def recording(fn):
            def wrapper(*args):
                threads.append(threading.get_ident())
                return fn(*args)

            return wrapper

        monkeypatch.setattr(profiler_module, "read_profile", recording(read_profile))
        monkeypatch.setattr(profiler_module, "write_profile", recording(write_profile))
        cached = CachedProfiler(StaticProfiler(tbe_profile), cache_dir=tmp_path)
        await cached.profile(tokens_of("tbe"))
        await cached.profile(tokens_of("tbe"))
        assert len(threads) == 2
        assert threading.get_ident() not in threads

    def test_path_is_sanitized(self, tmp_path):
        cached = CachedProfiler(StaticProfiler(), cache_dir=tmp_path, suffix=".gz")
        assert cached.path("/data/book 1/") == tmp_path / "data_book_1.gz"
        assert cached.path("") == tmp_path / "default.gz"

    @pytest.mark.asyncio
    async def test_write_failure_is_logged(self, tmp_path, tbe_profile, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        cached = CachedProfiler(StaticProfiler(tbe_profile), cache_dir=blocker)
        with caplog.at_level(logging.WARNING, logger="postcorrect.profiler"):
            profile = await cached.profile(tokens_of("tbe"))
        assert set(profile) == {"tbe"}
        assert "Could not cache profile" in caplog.text


@pytest.mark.slow
class TestSpellcheckProfiler:
    """Tests for SpellcheckProfiler with the English word list."""

    @pytest.fixture(scope="class")
    def profiler(self):
        return SpellcheckProfiler(language="en", max_distance=1)

    @pytest.mark.asyncio
    async def test_known_word_is_lexicon_entry(self, profiler):
        profile = await profiler.profile(tokens_of("the"))
        assert profile["the"].is_lexicon_entry()

    @pytest.mark.asyncio
    async def test_ocr_error_gets_candidates(self, profiler):
        profile = await profiler.profile(tokens_of("tbe", "tbe"))
        interp = profile["tbe"]
        assert interp.n == 2
        best = interp.candidates[0]
        assert best.suggestion == "the"
        assert best.distance == 1
        assert best.ocr_patterns == (Pattern("h", "b", 1),)
        assert best.weight == max(c.weight for c in interp.candidates)

    @pytest.mark.asyncio
    async def test_no_candidates(self, profiler):
        profile = await profiler.profile(tokens_of("qqqqwwww", ""))
        assert profile == {}
