"""Playback domain - queue, shuffle and the audio device.

This domain handles:
- The playback queue and its navigation rules (repeat, shuffle batches)
- Transport status and telemetry, with the stale-event guard
- Audio bridges that own the output device (mpv via JSON IPC)
- The player session tying them together
"""

# Snapshot types
from .state import PlaybackState, PlaybackStatus, RepeatMode

# Device events
from .events import (
    DeviceEvent,
    Ended,
    LoadToken,
    MetadataReady,
    PlaybackError,
    PositionTick,
)

# Core logic
from .machine import PlaybackStateMachine, clamp_volume, valid_seconds
from .queue import QueueStore
from .shuffle import DEFAULT_BATCH_SIZE, ShuffleEngine, fisher_yates

# Audio device
from .bridge import AudioBridge, BridgeCommand
from .player import (
    MpvAudioBridge,
    MpvUnavailableError,
    check_mpv_available,
    format_duration,
    format_time,
)

# Session
from .session import PlayerSession

__all__ = [
    # State
    "PlaybackState",
    "PlaybackStatus",
    "RepeatMode",
    # Events
    "DeviceEvent",
    "Ended",
    "LoadToken",
    "MetadataReady",
    "PlaybackError",
    "PositionTick",
    # Logic
    "PlaybackStateMachine",
    "QueueStore",
    "ShuffleEngine",
    "DEFAULT_BATCH_SIZE",
    "fisher_yates",
    "clamp_volume",
    "valid_seconds",
    # Device
    "AudioBridge",
    "BridgeCommand",
    "MpvAudioBridge",
    "MpvUnavailableError",
    "check_mpv_available",
    "format_time",
    "format_duration",
    # Session
    "PlayerSession",
]
