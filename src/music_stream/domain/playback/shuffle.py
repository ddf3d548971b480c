"""Shuffle engine: bounded, non-repeating randomized batches from the library.

The engine keeps a Fisher-Yates permutation of indices over the cached track
pool and serves it in fixed-size batches through an advancing cursor. Within
one cycle (one pass over the permutation) no track is served twice. When the
permutation runs out the cycle either ends or, under repeat-all, restarts with
a fresh permutation.
"""

import random
from typing import Collection, List, MutableSequence, Optional, TypeVar

from loguru import logger

from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import TrackPoolError, TrackPoolProvider

DEFAULT_BATCH_SIZE = 20

T = TypeVar("T")


def fisher_yates(items: MutableSequence[T], rng: random.Random) -> MutableSequence[T]:
    """Shuffle items in place and return them.

    For i from the last index down to 1, swap items[i] with a uniformly
    chosen items[j], 0 <= j <= i.
    """
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class ShuffleEngine:
    """Produces shuffle batches from a lazily fetched, cached track pool."""

    def __init__(
        self,
        provider: Optional[TrackPoolProvider] = None,
        rng: Optional[random.Random] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.provider = provider
        self.rng = rng or random.Random()
        self.batch_size = batch_size
        self._pool: Optional[List[Track]] = None
        self._order: List[int] = []
        self._cursor: Optional[int] = None  # None = no active cycle

    @property
    def pool(self) -> List[Track]:
        """Cached pool, or an empty list if it was never fetched."""
        return self._pool if self._pool is not None else []

    @property
    def has_pool(self) -> bool:
        return self._pool is not None

    @property
    def cycle_active(self) -> bool:
        return self._cursor is not None

    @property
    def remaining(self) -> int:
        """Tracks left in the current cycle."""
        if self._cursor is None:
            return 0
        return len(self._order) - self._cursor

    def prime(self, tracks: Collection[Track]) -> None:
        """Cache a pool directly, e.g. when the caller already fetched the library."""
        self._pool = _unique(tracks)
        self.reset()
        logger.debug(f"Shuffle pool primed with {len(self._pool)} tracks")

    async def ensure_pool(self) -> List[Track]:
        """Return the cached pool, fetching it from the provider on first use.

        A failed fetch is logged and yields an empty pool without caching it,
        so the next call retries.
        """
        if self._pool is not None:
            return self._pool
        if self.provider is None:
            logger.warning("No track pool provider configured, shuffling the current track only")
            return []

        try:
            tracks = await self.provider.fetch_all()
        except TrackPoolError as e:
            logger.warning(f"Could not fetch track pool for shuffle: {e}")
            return []

        self._pool = _unique(tracks)
        logger.info(f"Shuffle pool cached: {len(self._pool)} tracks")
        return self._pool

    def reset(self) -> None:
        """Forget the active cycle (the pool stays cached)."""
        self._order = []
        self._cursor = None

    def start_cycle(self, current: Track) -> List[Track]:
        """Begin a new cycle and return its first batch with ``current`` first.

        ``current`` is never repeated later in the cycle. If it is not part of
        the pool it still leads the batch, followed by pool tracks.
        """
        self._shuffle_order()
        position = self._pool_index(current)

        if position is not None:
            self._order.remove(position)
            self._order.insert(0, position)
            take = min(self.batch_size, len(self._order))
            batch = [self.pool[i] for i in self._order[:take]]
        else:
            take = min(self.batch_size - 1, len(self._order))
            batch = [current] + [self.pool[i] for i in self._order[:take]]

        self._cursor = take
        logger.info(
            f"Shuffle cycle started: batch of {len(batch)} from pool of {len(self.pool)}"
        )
        return batch

    def next_batch(
        self, repeat_all: bool, avoid: Collection[str] = ()
    ) -> Optional[List[Track]]:
        """Serve the next batch of the cycle.

        Args:
            repeat_all: Start a fresh cycle when the current one is exhausted
            avoid: File hashes that should not open a fresh cycle (just heard)

        Returns:
            The next batch, or None when there is no further content
        """
        if not self.pool:
            return None

        if self._cursor is None:
            self._begin_fresh_cycle(avoid)
        elif self._cursor >= len(self._order):
            if not repeat_all:
                logger.info("Shuffle cycle exhausted")
                return None
            logger.info("Shuffle cycle exhausted, reshuffling (repeat all)")
            self._begin_fresh_cycle(avoid)

        start = self._cursor
        indices = self._order[start:start + self.batch_size]
        self._cursor = start + len(indices)
        batch = [self.pool[i] for i in indices]
        logger.debug(f"Shuffle batch served: {len(batch)} tracks, {self.remaining} left in cycle")
        return batch

    def _begin_fresh_cycle(self, avoid: Collection[str]) -> None:
        self._shuffle_order()
        self._cursor = 0
        if not avoid or not self._order:
            return
        # Swap the first slot with the first track that was not just heard
        pool = self.pool
        if pool[self._order[0]].file_hash not in avoid:
            return
        for j in range(1, len(self._order)):
            if pool[self._order[j]].file_hash not in avoid:
                self._order[0], self._order[j] = self._order[j], self._order[0]
                return

    def _shuffle_order(self) -> None:
        self._order = fisher_yates(list(range(len(self.pool))), self.rng)

    def _pool_index(self, track: Track) -> Optional[int]:
        for i, candidate in enumerate(self.pool):
            if candidate.file_hash == track.file_hash:
                return i
        return None


def _unique(tracks: Collection[Track]) -> List[Track]:
    """Drop repeated file hashes, keeping first occurrence order."""
    seen = set()
    unique = []
    for track in tracks:
        if track.file_hash in seen:
            continue
        seen.add(track.file_hash)
        unique.append(track)
    return unique
