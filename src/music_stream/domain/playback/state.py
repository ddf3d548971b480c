"""
Playback state types for Music Stream

Enumerations for transport status and repeat mode, plus the read-only
snapshot handed to the UI layer.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from music_stream.domain.library.models import Track


class RepeatMode(str, Enum):
    """Governs wraparound at the end of the queue and batch exhaustion."""

    OFF = "off"
    ALL = "all"
    ONE = "one"

    def next(self) -> "RepeatMode":
        """Cycle off -> all -> one -> off."""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class PlaybackStatus(str, Enum):
    """Transport status of the player."""

    IDLE = "idle"  # No playable track, or the queue ran out
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class PlaybackState(BaseModel):
    """Immutable snapshot of everything the UI renders.

    ``duration`` is None while unknown; UIs must not treat that as zero.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    queue: List[Track] = []
    current_index: Optional[int] = None
    current_track: Optional[Track] = None
    status: PlaybackStatus = PlaybackStatus.IDLE
    position: float = 0.0
    duration: Optional[float] = None
    volume: float = 0.8
    muted: bool = False
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF
