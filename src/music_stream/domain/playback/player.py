"""
MPV audio bridge with JSON IPC for Music Stream
Streams tracks from the library backend through a long-running mpv process
"""

import asyncio
import json
import os
import subprocess
import tempfile
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, Optional

from loguru import logger

from .bridge import AudioBridge, BridgeCommand
from .events import Ended, LoadToken, MetadataReady, PlaybackError, PositionTick
from .machine import valid_seconds

# Seconds to wait for mpv to create its IPC socket
SOCKET_TIMEOUT = 5.0

# Seconds to wait for a reply to a single IPC request
REQUEST_TIMEOUT = 2.0

# observe_property ids
TIME_POS_OBSERVER = 1


class MpvUnavailableError(RuntimeError):
    """Raised when mpv cannot be started or its socket never appears."""


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


class MpvAudioBridge(AudioBridge):
    """Audio bridge driving mpv over its JSON IPC socket.

    mpv reports file boundaries with ``start-file`` / ``end-file`` events. Each
    ``loadfile`` we send queues a pending token; the next ``start-file``
    activates it, so device events are tagged with the load they really
    belong to even while an older file is still winding down.
    """

    def __init__(
        self,
        api_base: str,
        socket_path: Optional[str] = None,
        api_token: Optional[str] = None,
        volume: float = 1.0,
    ):
        super().__init__(api_base, volume=volume)
        if not socket_path:
            temp_dir = Path(tempfile.gettempdir())
            socket_path = str(temp_dir / f"music-stream-mpv-{os.getpid()}")
        self.socket_path = socket_path
        self.api_token = api_token
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._request_id = 0
        self._pending_requests: Dict[int, asyncio.Future] = {}
        self._pending_tokens: Deque[LoadToken] = deque()
        self._active_token: Optional[LoadToken] = None
        self._background: set[asyncio.Task] = set()

    # Lifecycle

    def build_command(self) -> list[str]:
        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={round(self.volume * 100)}",
            "--load-scripts=no",
        ]
        if self.api_token:
            cmd.append(f"--http-header-fields=Authorization: Basic {self.api_token}")
        return cmd

    async def start(self) -> None:
        """Start mpv, connect to its socket and begin executing commands.

        Raises:
            MpvUnavailableError: If mpv is missing or does not come up
        """
        if not await asyncio.to_thread(check_mpv_available):
            raise MpvUnavailableError("mpv is not installed or not on PATH")

        logger.info(f"Starting MPV player with socket: {self.socket_path}")

        # Remove stale socket from an earlier run
        if os.path.exists(self.socket_path):
            logger.debug(f"Removing existing socket: {self.socket_path}")
            os.unlink(self.socket_path)

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.build_command(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise MpvUnavailableError(f"Failed to start MPV: {e}") from e

        # Wait for socket to be created
        loop = asyncio.get_running_loop()
        deadline = loop.time() + SOCKET_TIMEOUT
        while not os.path.exists(self.socket_path):
            if loop.time() > deadline:
                logger.error(f"MPV socket creation timeout after {SOCKET_TIMEOUT}s")
                await self._kill_process()
                raise MpvUnavailableError("MPV socket was not created")
            await asyncio.sleep(0.1)

        try:
            self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
        except OSError as e:
            await self._kill_process()
            raise MpvUnavailableError(f"MPV socket connection failed: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop())
        await self._request("observe_property", TIME_POS_OBSERVER, "time-pos")
        await super().start()
        logger.info("MPV started successfully")

    async def close(self) -> None:
        """Stop the command worker, mpv and cleanup."""
        await super().close()

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        background = list(self._background)
        for task in background:
            task.cancel()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        self._background.clear()

        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError:
                pass  # Socket already gone
            self._writer = None

        await self._kill_process()

        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                pass

    async def _kill_process(self) -> None:
        if self._process is None:
            return
        if self._process.returncode is None:
            try:
                self._process.kill()
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except (ProcessLookupError, asyncio.TimeoutError):
                pass  # Process already terminated or couldn't be killed
        self._process = None

    # Commands

    async def _execute(self, command: BridgeCommand) -> bool:
        if command.op == "load":
            self._pending_tokens.append(command.token)
            ok = await self._send("loadfile", command.value, "replace")
            if not ok:
                self._discard_pending(command.token)
            return ok
        if command.op == "play":
            return await self._send("set_property", "pause", False)
        if command.op == "pause":
            return await self._send("set_property", "pause", True)
        if command.op == "seek":
            return await self._send("seek", command.value, "absolute")
        if command.op == "volume":
            return await self._send("set_property", "volume", round(command.value * 100))
        if command.op == "stop":
            self._pending_tokens.clear()
            self._active_token = None
            return await self._send("stop")

        logger.warning(f"Unknown device command: {command.op}")
        return False

    async def _send(self, *command: Any) -> bool:
        """Send an IPC command, True if mpv answered with success."""
        response = await self._request(*command)
        return response is not None and response.get("error") == "success"

    async def _request(self, *command: Any) -> Optional[dict[str, Any]]:
        """Send an IPC request and wait for its reply (None on failure)."""
        if self._writer is None:
            logger.warning(f"MPV not connected, dropping command {command[0]}")
            return None

        self._request_id += 1
        request_id = self._request_id
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        payload = json.dumps({"command": list(command), "request_id": request_id}) + "\n"
        try:
            self._writer.write(payload.encode("utf-8"))
            await self._writer.drain()
            return await asyncio.wait_for(future, timeout=REQUEST_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"MPV request {command[0]} failed: {e!r}")
            return None
        finally:
            self._pending_requests.pop(request_id, None)

    # Events

    async def _read_loop(self) -> None:
        """Read IPC lines until mpv goes away."""
        assert self._reader is not None
        while True:
            line = await self._reader.readline()
            if not line:
                break
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Ignoring malformed MPV line: {line!r}")
                continue
            self.handle_message(message)

        logger.error("MPV connection closed")
        token = self._active_token or self.current_token
        if token is not None:
            self.emit(PlaybackError(token, "mpv exited"))
        for future in self._pending_requests.values():
            if not future.done():
                future.set_result(None)

    def handle_message(self, message: dict[str, Any]) -> None:
        """Route one decoded IPC message: request reply or device event."""
        event = message.get("event")
        if event is None:
            future = self._pending_requests.get(message.get("request_id"))
            if future is not None and not future.done():
                future.set_result(message)
            return

        if event == "start-file":
            self._active_token = self._pending_tokens.popleft() if self._pending_tokens else None
            return

        token = self._active_token
        if token is None:
            return

        if event == "file-loaded":
            task = asyncio.create_task(self._announce_metadata(token))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        elif event == "property-change" and message.get("name") == "time-pos":
            position = message.get("data")
            if isinstance(position, (int, float)):
                self.emit(PositionTick(token, float(position)))
        elif event == "end-file":
            reason = message.get("reason")
            if reason == "eof":
                self._active_token = None
                self.emit(Ended(token))
            elif reason == "error":
                self._active_token = None
                self.emit(PlaybackError(token, message.get("file_error", "unknown error")))
            # stop / quit / redirect: replaced or stopped on purpose

    async def _announce_metadata(self, token: LoadToken) -> None:
        response = await self._request("get_property", "duration")
        duration = None
        if response is not None and response.get("error") == "success":
            duration = response.get("data")
        logger.debug(f"Metadata ready for {token.file_hash}: duration={duration}")
        self.emit(MetadataReady(token, duration))

    def _discard_pending(self, token: Optional[LoadToken]) -> None:
        try:
            self._pending_tokens.remove(token)
        except ValueError:
            pass


def format_time(seconds: Optional[float]) -> str:
    """Format a position in seconds as M:SS (unknown or invalid -> 0:00)."""
    seconds = valid_seconds(seconds)
    if seconds is None:
        return "0:00"

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def format_duration(seconds: Optional[float]) -> str:
    """Format a duration, showing --:-- when it is unknown."""
    if valid_seconds(seconds) is None:
        return "--:--"
    return format_time(seconds)
