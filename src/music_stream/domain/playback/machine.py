"""Playback state machine.

Tracks transport status and playback telemetry, and decides which device
events still apply. States: idle (initial), loading, playing, paused, error.

    any      -> loading   a load was requested (track changed or reload)
    loading  -> playing   MetadataReady for the loaded track (auto-play)
    playing <-> paused    explicit play / pause
    loading/playing/paused -> error   PlaybackError for the loaded track

Ended is accepted only while loading, playing or paused, and is acted on by
the session (advance the queue). After an error or once idle it is dropped.
"""

import math
from typing import Optional

from loguru import logger

from .events import (
    DeviceEvent,
    Ended,
    LoadToken,
    MetadataReady,
    PlaybackError,
    PositionTick,
)
from .state import PlaybackStatus

ACTIVE_STATES = (PlaybackStatus.LOADING, PlaybackStatus.PLAYING, PlaybackStatus.PAUSED)


class PlaybackStateMachine:
    """Transport status, telemetry and the stale-event guard."""

    def __init__(self, volume: float = 0.8):
        self.status = PlaybackStatus.IDLE
        self.position = 0.0
        self.duration: Optional[float] = None
        self.volume = clamp_volume(volume)
        self.muted = False
        self.last_error: Optional[str] = None
        # Bumped on every load request; the session loads when it moves
        self.load_serial = 0
        self.loaded: Optional[LoadToken] = None

    # Load lifecycle

    def request_load(self) -> None:
        """Enter loading for the current track (new track or restart)."""
        self.status = PlaybackStatus.LOADING
        self.position = 0.0
        self.duration = None
        self.last_error = None
        self.load_serial += 1

    def bind(self, token: LoadToken) -> None:
        """Record the load that events must belong to from now on."""
        self.loaded = token

    def unbind(self) -> None:
        self.loaded = None

    def settle_idle(self, reset_telemetry: bool = False) -> None:
        """Enter idle; optionally zero position and duration (queue cleared)."""
        self.status = PlaybackStatus.IDLE
        if reset_telemetry:
            self.position = 0.0
            self.duration = 0.0

    # Events

    def is_current(self, event: DeviceEvent) -> bool:
        """Check that an event belongs to the load currently bound."""
        return self.loaded is not None and event.token == self.loaded

    def apply(self, event: DeviceEvent) -> bool:
        """Apply a device event.

        Returns:
            True if the event was current and applied, False if dropped
        """
        if not self.is_current(event):
            logger.debug(f"Dropping stale event {type(event).__name__} for {event.token}")
            return False

        if isinstance(event, MetadataReady):
            self.duration = valid_seconds(event.duration)
            if self.status is PlaybackStatus.LOADING:
                self.status = PlaybackStatus.PLAYING
            return True

        if isinstance(event, PositionTick):
            position = valid_seconds(event.position)
            if position is not None and self.status in ACTIVE_STATES:
                self.position = position
            return True

        if isinstance(event, Ended):
            if self.status not in ACTIVE_STATES:
                logger.debug(f"Ignoring end of {event.token.file_hash} while {self.status.value}")
                return False
            return True

        if isinstance(event, PlaybackError):
            if self.status in ACTIVE_STATES:
                logger.error(f"Playback error for {event.token.file_hash}: {event.message}")
                self.status = PlaybackStatus.ERROR
                self.last_error = event.message or "playback failed"
            return True

        logger.warning(f"Unknown device event: {event!r}")
        return False

    # Transport commands

    def resume(self) -> bool:
        """paused -> playing"""
        if self.status is not PlaybackStatus.PAUSED:
            return False
        self.status = PlaybackStatus.PLAYING
        return True

    def pause(self) -> bool:
        """playing -> paused"""
        if self.status is not PlaybackStatus.PLAYING:
            return False
        self.status = PlaybackStatus.PAUSED
        return True

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.muted else self.volume


def valid_seconds(value) -> Optional[float]:
    """Return value as float if it is a finite, non-negative number, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


def clamp_volume(level) -> float:
    """Clamp a volume level into [0, 1]; non-numbers become 0."""
    if isinstance(level, bool):
        return 0.0
    try:
        level = float(level)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(level):
        return 0.0
    return max(0.0, min(1.0, level))
