"""
Queue store for Music Stream.

Owns the ordered playback queue, the current index, shuffle/repeat flags,
the played set of the active shuffle batch, and the linear queue saved while
shuffle is on. Every command is synchronous; when a command changes the
current track (or asks for a restart) it puts the state machine into loading,
and the session loads that track on the device.

Index commands with out-of-range indices are no-ops, not errors: UI code may
race with queue mutation.
"""

import asyncio
from typing import Iterable, List, Optional, Set, Union

from loguru import logger

from music_stream.domain.library.models import Track

from .machine import PlaybackStateMachine
from .shuffle import ShuffleEngine
from .state import RepeatMode

DEFAULT_RESTART_THRESHOLD = 3.0


class QueueStore:
    """The playback queue and its command semantics."""

    def __init__(
        self,
        machine: PlaybackStateMachine,
        shuffler: ShuffleEngine,
        repeat: RepeatMode = RepeatMode.OFF,
        restart_threshold: float = DEFAULT_RESTART_THRESHOLD,
    ):
        self.machine = machine
        self.shuffler = shuffler
        self.repeat = RepeatMode(repeat)
        self.restart_threshold = restart_threshold
        self.shuffle = False
        self._queue: List[Track] = []
        self._index = 0
        self._played: Set[str] = set()
        self._linear: Optional[List[Track]] = None  # pre-shuffle queue
        # Bumped whenever a shuffle-on is issued or overridden; a pending
        # enable only builds its batch if the generation is still its own
        self._shuffle_generation = 0
        self._shuffle_pending = False

    # Read access

    @property
    def tracks(self) -> List[Track]:
        """Copy of the queue."""
        return list(self._queue)

    @property
    def current_index(self) -> Optional[int]:
        return self._index if self._queue else None

    @property
    def current_track(self) -> Optional[Track]:
        return self._queue[self._index] if self._queue else None

    @property
    def played(self) -> Set[str]:
        return set(self._played)

    def __len__(self) -> int:
        return len(self._queue)

    def index_of(self, track: Track) -> int:
        """Position of track (by identity) in the queue, -1 if absent."""
        for i, candidate in enumerate(self._queue):
            if candidate.file_hash == track.file_hash:
                return i
        return -1

    # Queue replacement

    def set_queue(self, tracks: Iterable[Track]) -> None:
        """Replace the queue and start from its first track."""
        previous = self.current_track
        self._queue = list(tracks)
        self._index = 0
        self._leave_shuffle()
        logger.info(f"Queue set: {len(self._queue)} tracks")

        current = self.current_track
        if current is None:
            self.machine.settle_idle(reset_telemetry=True)
        elif not current.same_as(previous):
            self.machine.request_load()

    def play_track(self, track: Track, queue: Optional[Iterable[Track]] = None) -> bool:
        """Play a track, optionally replacing the queue first.

        Without a replacement queue the track must already be queued; if it
        is not, nothing happens.

        Returns:
            True if playback of a track was requested
        """
        if queue is not None:
            self._queue = list(queue)
            self._leave_shuffle()
            if not self._queue:
                self._index = 0
                self.machine.settle_idle(reset_telemetry=True)
                return False
            index = self.index_of(track)
            self._select(index if index >= 0 else 0)
            return True

        index = self.index_of(track)
        if index < 0:
            logger.debug(f"play_track: {track.file_hash} not in queue, ignoring")
            return False
        self._select(index)
        return True

    def play_at_index(self, index: int) -> bool:
        """Jump to a queue position; out-of-range indices are ignored."""
        if not self._in_range(index):
            logger.debug(f"play_at_index: {index} out of range (len={len(self._queue)})")
            return False
        self._select(index)
        return True

    # Queue mutation

    def add_to_queue(self, track: Track) -> bool:
        """Append a track unless it is already the last entry.

        Returns:
            True if the track was appended
        """
        if self._queue and self._queue[-1].same_as(track):
            logger.debug(f"add_to_queue: {track.file_hash} is already last, skipping")
            return False
        self._queue.append(track)
        logger.info(f"Added to queue: {track.display_title}")
        return True

    def remove_from_queue(self, index: int) -> bool:
        """Remove the track at index.

        Removing the current track moves playback to the track that slides
        into its place (or the new last track); removing the only track
        leaves the player idle with no current track.

        Returns:
            True if a track was removed
        """
        if not self._in_range(index):
            return False

        removed = self._queue.pop(index)
        logger.info(f"Removed from queue: {removed.display_title}")

        if index < self._index:
            self._index -= 1
        elif index == self._index:
            if self._queue:
                self._index = min(self._index, len(self._queue) - 1)
                self._played.discard(removed.file_hash)
                self._select(self._index)
            else:
                self._index = 0
                self.machine.settle_idle(reset_telemetry=True)
        return True

    def clear_queue(self) -> None:
        """Empty the queue and stop."""
        count = len(self._queue)
        self._cancel_pending_shuffle()
        self._queue = []
        self._index = 0
        self._played.clear()
        self._linear = None
        self.shuffler.reset()
        self.machine.settle_idle(reset_telemetry=True)
        logger.info(f"Queue cleared ({count} tracks removed)")

    # Navigation

    def play_next(self) -> None:
        """Advance according to repeat mode and shuffle.

        Priority: repeat-one reloads the same track; shuffle advances within
        the batch and fetches the next batch at its end; otherwise the index
        advances, wrapping only under repeat-all. Running out of content
        settles at idle with the queue and current track kept.
        """
        if not self._queue:
            return

        if self.repeat is RepeatMode.ONE:
            self.machine.request_load()
            return

        if self._batch_active:
            if self._index < len(self._queue) - 1:
                self._select(self._index + 1)
                return
            batch = self.shuffler.next_batch(
                repeat_all=self.repeat is RepeatMode.ALL, avoid=self._played
            )
            if not batch:
                logger.info("Shuffle has no further batch, stopping")
                self.machine.settle_idle()
                return
            self._queue = batch
            self._played.clear()
            self._select(0)
            return

        next_index = self._index + 1
        if next_index >= len(self._queue):
            if self.repeat is not RepeatMode.ALL:
                logger.info("Reached end of queue")
                self.machine.settle_idle()
                return
            next_index = 0
        self._select(next_index)

    def play_previous(self) -> None:
        """Restart the current track, or step back one.

        Past the restart threshold the current track starts over; otherwise
        the index moves back, wrapping to the end only under repeat-all.
        """
        if not self._queue:
            return

        if self.machine.position > self.restart_threshold:
            self.machine.request_load()
            return

        prev_index = self._index - 1
        if prev_index < 0:
            prev_index = len(self._queue) - 1 if self.repeat is RepeatMode.ALL else 0
        self._select(prev_index)

    def reload_current(self) -> bool:
        """Request a fresh load of the current track."""
        if self.current_track is None:
            return False
        self.machine.request_load()
        return True

    # Shuffle / Repeat

    async def toggle_shuffle(self) -> None:
        """Turn shuffle on (fetching the pool if needed) or off.

        The flag flips before the pool is fetched, so toggles take effect in
        the order they were issued. The batch is built once the pool arrives,
        unless a later toggle or queue replacement overrode this one.
        """
        if self.shuffle:
            self._disable_shuffle()
            return

        self.shuffle = True
        self._played.clear()
        self._shuffle_generation += 1
        generation = self._shuffle_generation
        if self.current_track is None:
            logger.info("Shuffle: on (nothing playing)")
            return

        self._shuffle_pending = True
        try:
            await self.shuffler.ensure_pool()
        except asyncio.CancelledError:
            if generation == self._shuffle_generation:
                self._leave_shuffle()
            raise

        if generation != self._shuffle_generation:
            logger.debug("Shuffle-on was overridden while the pool was fetched")
            return
        self._shuffle_pending = False
        self._enable_shuffle()

    def set_repeat(self, mode: Union[RepeatMode, str]) -> bool:
        """Set the repeat mode; unknown modes are ignored."""
        try:
            self.repeat = RepeatMode(mode)
        except ValueError:
            logger.warning(f"Ignoring unknown repeat mode: {mode!r}")
            return False
        logger.info(f"Repeat: {self.repeat.value}")
        return True

    def toggle_repeat(self) -> RepeatMode:
        self.repeat = self.repeat.next()
        logger.info(f"Repeat: {self.repeat.value}")
        return self.repeat

    # Internals

    def _in_range(self, index: int) -> bool:
        return (
            isinstance(index, int)
            and not isinstance(index, bool)
            and 0 <= index < len(self._queue)
        )

    def _select(self, index: int) -> None:
        self._index = index
        if self.shuffle:
            self._played.add(self._queue[index].file_hash)
        self.machine.request_load()

    @property
    def _batch_active(self) -> bool:
        return self.shuffle and not self._shuffle_pending

    def _enable_shuffle(self) -> None:
        # Navigation may have moved on while the pool was fetched
        self._played.clear()
        current = self.current_track
        if current is None:
            logger.info("Shuffle: on (nothing playing)")
            return

        self._linear = list(self._queue)
        self._queue = self.shuffler.start_cycle(current)
        self._index = 0
        self._played.add(current.file_hash)
        logger.info(f"Shuffle: on ({len(self._queue)} track batch)")

    def _disable_shuffle(self) -> None:
        linear = self._linear
        current = self.current_track
        self._leave_shuffle()
        logger.info("Shuffle: off")

        if linear is None:
            return

        self._queue = linear
        index = self.index_of(current) if current is not None else -1
        if index >= 0:
            self._index = index
        elif self._queue:
            self._index = 0
            self.machine.request_load()
        else:
            self._index = 0
            self.machine.settle_idle(reset_telemetry=True)

    def _cancel_pending_shuffle(self) -> None:
        self._shuffle_generation += 1
        self._shuffle_pending = False

    def _leave_shuffle(self) -> None:
        self._cancel_pending_shuffle()
        self.shuffle = False
        self._played.clear()
        self._linear = None
        self.shuffler.reset()
