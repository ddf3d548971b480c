"""
Typed device events emitted by an audio bridge.

Every event carries the LoadToken of the load it belongs to. A token is
issued per load, so callbacks from a superseded load can be recognised and
dropped by the dispatcher.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class LoadToken:
    """Identity of one load of one track on the output device."""

    file_hash: str
    generation: int


@dataclass(frozen=True)
class MetadataReady:
    token: LoadToken
    duration: Optional[float] = None  # None when the device could not tell


@dataclass(frozen=True)
class PositionTick:
    token: LoadToken
    position: float


@dataclass(frozen=True)
class Ended:
    token: LoadToken


@dataclass(frozen=True)
class PlaybackError:
    token: LoadToken
    message: str = ""


DeviceEvent = Union[MetadataReady, PositionTick, Ended, PlaybackError]
