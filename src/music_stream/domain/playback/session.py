"""Player session: the command surface and event dispatcher.

A session is constructed explicitly and owns one queue store, one shuffle
engine and one state machine, and drives one audio bridge passed in by
reference. UI code issues commands on the session and renders ``state``;
device events come back through ``dispatch`` (or ``run``), the single place
where stale callbacks are filtered.

All commands except ``toggle_shuffle`` are synchronous. The session runs on
one event loop thread; no locks are needed.
"""

import asyncio
import math
import random
from typing import Callable, Iterable, List, Optional, Union

from loguru import logger

from music_stream.core.config import Config
from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import TrackPoolProvider

from .bridge import AudioBridge
from .events import DeviceEvent, Ended, MetadataReady
from .machine import PlaybackStateMachine, clamp_volume, valid_seconds
from .queue import DEFAULT_RESTART_THRESHOLD, QueueStore
from .shuffle import DEFAULT_BATCH_SIZE, ShuffleEngine
from .state import PlaybackState, PlaybackStatus, RepeatMode

ChangeCallback = Callable[[PlaybackState], None]


class PlayerSession:
    """Queue, shuffle and transport state bound to one output device."""

    def __init__(
        self,
        bridge: AudioBridge,
        provider: Optional[TrackPoolProvider] = None,
        *,
        rng: Optional[random.Random] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        volume: float = 0.8,
        repeat: Union[RepeatMode, str] = RepeatMode.OFF,
        restart_threshold: float = DEFAULT_RESTART_THRESHOLD,
    ):
        self.bridge = bridge
        self.machine = PlaybackStateMachine(volume=volume)
        self.shuffler = ShuffleEngine(provider, rng=rng, batch_size=batch_size)
        self.queue = QueueStore(
            self.machine,
            self.shuffler,
            repeat=RepeatMode(repeat),
            restart_threshold=restart_threshold,
        )
        self._loaded_serial = self.machine.load_serial
        self._on_change_callbacks: List[ChangeCallback] = []
        self.bridge.set_volume(self.machine.effective_volume)

    @classmethod
    def from_config(
        cls,
        config: Config,
        bridge: AudioBridge,
        provider: Optional[TrackPoolProvider] = None,
    ) -> "PlayerSession":
        """Create a session using the [player] and [shuffle] settings."""
        seed = config.shuffle.seed
        return cls(
            bridge,
            provider,
            rng=random.Random(seed) if seed is not None else None,
            batch_size=config.shuffle.batch_size,
            volume=config.player.volume,
            repeat=config.player.repeat,
            restart_threshold=config.player.restart_threshold_seconds,
        )

    @property
    def state(self) -> PlaybackState:
        """Snapshot of everything the UI renders."""
        return PlaybackState(
            queue=self.queue.tracks,
            current_index=self.queue.current_index,
            current_track=self.queue.current_track,
            status=self.machine.status,
            position=self.machine.position,
            duration=self.machine.duration,
            volume=self.machine.volume,
            muted=self.machine.muted,
            shuffle=self.queue.shuffle,
            repeat=self.queue.repeat,
        )

    # Queue commands

    def set_queue(self, tracks: Iterable[Track]) -> None:
        self.queue.set_queue(tracks)
        self._sync_output()

    def play_track(self, track: Track, queue: Optional[Iterable[Track]] = None) -> None:
        self.queue.play_track(track, queue)
        self._sync_output()

    def play_at_index(self, index: int) -> None:
        self.queue.play_at_index(index)
        self._sync_output()

    def add_to_queue(self, track: Track) -> None:
        self.queue.add_to_queue(track)
        self._sync_output()

    def remove_from_queue(self, index: int) -> None:
        self.queue.remove_from_queue(index)
        self._sync_output()

    def clear_queue(self) -> None:
        self.queue.clear_queue()
        self._sync_output()

    def play_next(self) -> None:
        self.queue.play_next()
        self._sync_output()

    def play_previous(self) -> None:
        self.queue.play_previous()
        self._sync_output()

    async def toggle_shuffle(self) -> None:
        await self.queue.toggle_shuffle()
        self._sync_output()

    def set_repeat(self, mode: Union[RepeatMode, str]) -> None:
        self.queue.set_repeat(mode)
        self._notify_change()

    def toggle_repeat(self) -> None:
        self.queue.toggle_repeat()
        self._notify_change()

    # Transport commands

    def play(self) -> None:
        """Resume when paused; restart the current track when idle."""
        status = self.machine.status
        if status is PlaybackStatus.PAUSED:
            self.bridge.play()
            self.machine.resume()
        elif status is PlaybackStatus.IDLE:
            self.queue.reload_current()
        elif status is PlaybackStatus.ERROR:
            logger.info("Not retrying failed track; pick a track or skip to recover")
        self._sync_output()

    def pause(self) -> None:
        if self.machine.pause():
            self.bridge.pause()
        self._notify_change()

    def seek(self, position: float) -> None:
        """Seek within the current track; invalid positions are ignored."""
        position = valid_seconds(position)
        if position is None or self.machine.loaded is None:
            return
        # Position follows the next tick from the device
        self.bridge.seek(position)

    def set_volume(self, level: float) -> None:
        """Set volume (clamped to [0, 1]); zero volume counts as muted."""
        if isinstance(level, bool) or not isinstance(level, (int, float)) or math.isnan(level):
            logger.debug(f"Ignoring invalid volume: {level!r}")
            return
        self.machine.volume = clamp_volume(level)
        self.machine.muted = self.machine.volume == 0
        self.bridge.set_volume(self.machine.effective_volume)
        self._notify_change()

    def toggle_mute(self) -> None:
        self.machine.muted = not self.machine.muted
        self.bridge.set_volume(self.machine.effective_volume)
        self._notify_change()

    # Events

    def dispatch(self, event: DeviceEvent) -> bool:
        """Apply one device event if it belongs to the current load.

        Returns:
            True if the event was applied
        """
        if not self.machine.apply(event):
            return False

        if isinstance(event, MetadataReady) and self.machine.status is PlaybackStatus.PLAYING:
            # Auto-play once the track is ready
            self.bridge.play()
        elif isinstance(event, Ended):
            logger.debug(f"Track ended: {event.token.file_hash}")
            self.queue.play_next()

        self._sync_output()
        return True

    async def run(self) -> None:
        """Dispatch device events until cancelled."""
        async for event in self.bridge.iter_events():
            try:
                self.dispatch(event)
            except Exception:
                logger.exception(f"Error dispatching {type(event).__name__}")

    async def wait_for(
        self, predicate: Callable[[PlaybackState], bool], timeout: Optional[float] = None
    ) -> PlaybackState:
        """Wait until a state snapshot satisfies predicate."""
        state = self.state
        if predicate(state):
            return state

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def check(new_state: PlaybackState) -> None:
            if not future.done() and predicate(new_state):
                future.set_result(new_state)

        self.add_change_callback(check)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self.remove_change_callback(check)

    # Change notification

    def add_change_callback(self, callback: ChangeCallback) -> None:
        """Register a callback to be called with the new state after each change."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: ChangeCallback) -> None:
        """Unregister a change callback."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    # Internals

    def _sync_output(self) -> None:
        """Bring the device in line with the queue, then notify listeners."""
        if self.machine.load_serial != self._loaded_serial:
            self._loaded_serial = self.machine.load_serial
            track = self.queue.current_track
            if track is not None:
                self.machine.bind(self.bridge.load_track(track))
        elif self.queue.current_track is None and self.machine.loaded is not None:
            # Queue emptied under a loaded track
            self.bridge.stop()
            self.machine.unbind()
        self._notify_change()

    def _notify_change(self) -> None:
        if not self._on_change_callbacks:
            return
        state = self.state
        for callback in list(self._on_change_callbacks):
            try:
                callback(state)
            except Exception:
                logger.exception("Error in player change callback")
