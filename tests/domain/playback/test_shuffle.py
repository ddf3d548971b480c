"""Tests for the shuffle engine."""

import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import make_tracks
from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import StaticTrackPool, TrackPoolError
from music_stream.domain.playback.shuffle import ShuffleEngine, fisher_yates


def hashes(batch):
    return [t.file_hash for t in batch]


class TestFisherYates:
    """Tests for the in-place shuffle."""

    def test_is_a_permutation(self) -> None:
        """Should keep every element exactly once."""
        items = list(range(100))
        fisher_yates(items, random.Random(5))
        assert sorted(items) == list(range(100))

    def test_seeded_shuffle_is_reproducible(self) -> None:
        """Should produce the same order for the same seed."""
        a = fisher_yates(list(range(30)), random.Random(11))
        b = fisher_yates(list(range(30)), random.Random(11))
        assert a == b

    def test_handles_tiny_inputs(self) -> None:
        """Should leave empty and single-element lists alone."""
        assert fisher_yates([], random.Random(1)) == []
        assert fisher_yates(["x"], random.Random(1)) == ["x"]


class TestStartCycle:
    """Tests for the first batch of a cycle."""

    def test_current_track_leads_batch(self) -> None:
        """Should put the current track first and fill to batch size."""
        pool = make_tracks(50)
        engine = ShuffleEngine(rng=random.Random(1))
        engine.prime(pool)

        batch = engine.start_cycle(pool[17])

        assert batch[0] == pool[17]
        assert len(batch) == 20
        assert len(set(hashes(batch))) == 20
        assert engine.remaining == 30

    def test_small_pool_yields_short_batch(self) -> None:
        """Should serve the whole pool when it is smaller than a batch."""
        pool = make_tracks(4)
        engine = ShuffleEngine(rng=random.Random(1))
        engine.prime(pool)

        batch = engine.start_cycle(pool[2])

        assert batch[0] == pool[2]
        assert sorted(hashes(batch)) == sorted(hashes(pool))
        assert engine.remaining == 0

    def test_current_track_outside_pool(self) -> None:
        """Should still lead with the current track, then pool tracks."""
        pool = make_tracks(30)
        outsider = Track(file_hash="elsewhere", title="Not in library")
        engine = ShuffleEngine(rng=random.Random(1))
        engine.prime(pool)

        batch = engine.start_cycle(outsider)

        assert batch[0] == outsider
        assert len(batch) == 20
        assert "elsewhere" not in hashes(batch[1:])

    def test_empty_pool_gives_single_track_batch(self) -> None:
        """Should degrade to the current track alone."""
        engine = ShuffleEngine(rng=random.Random(1))
        current = make_tracks(1)[0]

        assert engine.start_cycle(current) == [current]
        assert engine.next_batch(repeat_all=True) is None


class TestNextBatch:
    """Tests for batch exhaustion and cycle restarts."""

    def test_cycle_has_no_repeats(self) -> None:
        """Should serve each pool track once per cycle, in fixed-size batches."""
        pool = make_tracks(45)
        engine = ShuffleEngine(rng=random.Random(9), batch_size=20)
        engine.prime(pool)

        served = hashes(engine.start_cycle(pool[0]))
        sizes = [len(served)]
        while True:
            batch = engine.next_batch(repeat_all=False)
            if batch is None:
                break
            sizes.append(len(batch))
            served.extend(hashes(batch))

        assert sizes == [20, 20, 5]
        assert sorted(served) == sorted(hashes(pool))

    def test_repeat_all_starts_fresh_cycle(self) -> None:
        """Should reshuffle once the cycle is exhausted under repeat-all."""
        pool = make_tracks(6)
        engine = ShuffleEngine(rng=random.Random(4), batch_size=3)
        engine.prime(pool)

        engine.start_cycle(pool[0])
        engine.next_batch(repeat_all=True)
        fresh = engine.next_batch(repeat_all=True)

        assert fresh is not None
        assert len(fresh) == 3
        assert engine.remaining == 3

    def test_fresh_cycle_avoids_just_played_opener(self) -> None:
        """Should not open a new cycle with a track that was just heard."""
        pool = make_tracks(6)
        for seed in range(20):
            engine = ShuffleEngine(rng=random.Random(seed), batch_size=6)
            engine.prime(pool)
            engine.start_cycle(pool[0])
            played = {"h0", "h1", "h2"}

            fresh = engine.next_batch(repeat_all=True, avoid=played)

            assert fresh[0].file_hash not in played

    def test_reset_forgets_cycle(self) -> None:
        """Should keep the pool but drop the cycle."""
        pool = make_tracks(10)
        engine = ShuffleEngine(rng=random.Random(1))
        engine.prime(pool)
        engine.start_cycle(pool[0])

        engine.reset()

        assert engine.cycle_active is False
        assert engine.has_pool is True

    def test_rejects_invalid_batch_size(self) -> None:
        """Should refuse a batch size below one."""
        with pytest.raises(ValueError):
            ShuffleEngine(batch_size=0)


class TestEnsurePool:
    """Tests for lazy pool fetching."""

    @pytest.mark.anyio
    async def test_fetches_and_dedups(self) -> None:
        """Should cache the provider's tracks without duplicate hashes."""
        pool = make_tracks(3)
        engine = ShuffleEngine(StaticTrackPool(pool + pool[:1]))

        result = await engine.ensure_pool()

        assert hashes(result) == ["h0", "h1", "h2"]
        assert engine.has_pool is True

    @pytest.mark.anyio
    async def test_failure_is_not_cached(self) -> None:
        """Should return an empty pool on failure and retry next time."""
        provider = MagicMock()
        provider.fetch_all = AsyncMock(
            side_effect=[TrackPoolError("down"), make_tracks(2)]
        )
        engine = ShuffleEngine(provider)

        assert await engine.ensure_pool() == []
        assert engine.has_pool is False
        assert len(await engine.ensure_pool()) == 2
        assert provider.fetch_all.await_count == 2

    @pytest.mark.anyio
    async def test_without_provider(self) -> None:
        """Should fall back to an empty pool when nothing can supply one."""
        engine = ShuffleEngine()
        assert await engine.ensure_pool() == []
