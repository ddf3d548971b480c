"""
Audio bridge base class.

A bridge is the single owner of one output device. Commands are accepted
synchronously and executed in issuance order by one worker task, so callers
never await device I/O and never see device exceptions. Results travel back
as typed events on an asyncio queue.

Subclass contract:

    class MyBridge(AudioBridge):
        async def _execute(self, command: BridgeCommand) -> bool: ...

Optional overrides:
    start()  - acquire the device, then call super().start()
    close()  - call super().close(), then release the device
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from loguru import logger

from music_stream.domain.library.api import track_audio_url
from music_stream.domain.library.models import Track

from .events import DeviceEvent, LoadToken, PlaybackError
from .machine import clamp_volume, valid_seconds

# Failures of these operations are reported as PlaybackError events
FATAL_OPS = ("load", "play")


@dataclass(frozen=True)
class BridgeCommand:
    """One device operation, tagged with the load that was current when issued."""

    op: str  # load, play, pause, seek, volume, stop
    token: Optional[LoadToken] = None
    value: Any = None


class AudioBridge(ABC):
    """Translates transport commands into device operations."""

    def __init__(self, api_base: str, volume: float = 1.0):
        self.api_base = api_base
        self.volume = clamp_volume(volume)
        self.current_token: Optional[LoadToken] = None
        self.events: "asyncio.Queue[DeviceEvent]" = asyncio.Queue()
        self._commands: "asyncio.Queue[BridgeCommand]" = asyncio.Queue()
        self._generation = 0
        self._worker_task: Optional[asyncio.Task] = None

    # Commands (synchronous, queued)

    def load_track(self, track: Track) -> LoadToken:
        """Begin loading a track and return the token its events will carry.

        The source address is derived from the file hash alone. Issuing a
        new load supersedes every earlier one.
        """
        self._generation += 1
        token = LoadToken(track.file_hash, self._generation)
        self.current_token = token
        url = track_audio_url(self.api_base, track.file_hash)
        logger.info(f"Loading track: {url}")
        self._submit(BridgeCommand("load", token, url))
        return token

    def play(self) -> None:
        self._submit(BridgeCommand("play", self.current_token))

    def pause(self) -> None:
        self._submit(BridgeCommand("pause", self.current_token))

    def seek(self, position: float) -> bool:
        """Seek to an absolute position; invalid positions are ignored."""
        position = valid_seconds(position)
        if position is None:
            return False
        self._submit(BridgeCommand("seek", self.current_token, position))
        return True

    def set_volume(self, level: float) -> float:
        """Set output volume, clamped to [0, 1]. Returns the applied level."""
        self.volume = clamp_volume(level)
        self._submit(BridgeCommand("volume", self.current_token, self.volume))
        return self.volume

    def stop(self) -> None:
        """Stop output; events of the previous load become stale."""
        self.current_token = None
        self._submit(BridgeCommand("stop"))

    # Events

    def emit(self, event: DeviceEvent) -> None:
        self.events.put_nowait(event)

    async def iter_events(self) -> AsyncIterator[DeviceEvent]:
        """Yield device events until cancelled."""
        while True:
            yield await self.events.get()

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def start(self) -> None:
        """Start executing queued commands."""
        if self.running:
            return
        self._worker_task = asyncio.create_task(self._run_commands())

    async def close(self) -> None:
        """Stop executing commands; pending ones are dropped."""
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

    async def __aenter__(self) -> "AudioBridge":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Internals

    def _submit(self, command: BridgeCommand) -> None:
        self._commands.put_nowait(command)

    async def _run_commands(self) -> None:
        while True:
            command = await self._commands.get()
            try:
                ok = await self._execute(command)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Device command {command.op} failed")
                ok = False
                message = str(e)
            else:
                message = f"{command.op} failed"

            if not ok:
                self._report_failure(command, message)

    def _report_failure(self, command: BridgeCommand, message: str) -> None:
        if command.op in FATAL_OPS and command.token is not None:
            self.emit(PlaybackError(command.token, message))
        else:
            logger.warning(f"Device command {command.op} failed: {message}")

    @abstractmethod
    async def _execute(self, command: BridgeCommand) -> bool:
        """Perform one device operation.

        Returns:
            True on success. False (or an exception) on a load/play command
            is reported as a PlaybackError event.
        """
