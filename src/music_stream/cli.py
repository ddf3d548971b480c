"""
Music Stream CLI - Entry point

Lists the backend library and streams it through mpv, with the same queue,
shuffle and repeat rules a UI client would get from a PlayerSession.
"""

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from loguru import logger
from rich.table import Table

from music_stream.context import AppContext
from music_stream.core.config import VALID_REPEAT_MODES, load_config
from music_stream.core.output import setup_from_config
from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import TrackPoolError
from music_stream.domain.playback.player import MpvUnavailableError, format_duration
from music_stream.domain.playback.session import PlayerSession
from music_stream.domain.playback.state import PlaybackState, PlaybackStatus

# Give up after this many tracks in a row fail to play
MAX_CONSECUTIVE_ERRORS = 3


async def fetch_library(ctx: AppContext) -> Optional[List[Track]]:
    """Fetch the library, printing a message on failure."""
    try:
        tracks = await ctx.provider.fetch_all()
    except TrackPoolError as e:
        logger.error(f"Library fetch failed: {e}")
        ctx.console.print(f"❌ Could not fetch library: {e}", style="red")
        return None
    return tracks


async def run_tracks(ctx: AppContext, limit: Optional[int] = None) -> int:
    """List library tracks.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    tracks = await fetch_library(ctx)
    if tracks is None:
        return 1

    shown = tracks[:limit] if limit else tracks
    table = Table(title=f"Library ({len(tracks)} tracks)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title")
    table.add_column("Album", style="cyan")
    table.add_column("Duration", justify="right")

    for i, track in enumerate(shown, 1):
        table.add_row(str(i), track.display_title, track.album or "", format_duration(track.duration))

    ctx.console.print(table)
    if len(shown) < len(tracks):
        ctx.console.print(f"... and {len(tracks) - len(shown)} more", style="dim")
    return 0


def _find_track(tracks: List[Track], file_hash: str) -> Optional[Track]:
    for track in tracks:
        if track.file_hash == file_hash:
            return track
    return None


async def play_until_idle(ctx: AppContext, session: PlayerSession) -> int:
    """Drive an already loaded session until it runs out of tracks.

    Failed tracks are skipped; too many failures in a row abort playback.

    Returns:
        Exit code (0 when the queue finished, 1 when playback kept failing)
    """
    announced = None
    errors = 0

    def on_change(state: PlaybackState) -> None:
        nonlocal announced, errors
        token = session.machine.loaded
        if state.status is PlaybackStatus.PLAYING and token is not None and token != announced:
            announced = token
            errors = 0
            track = state.current_track
            position = (state.current_index or 0) + 1
            ctx.console.print(
                f"♪ Now playing [{position}/{len(state.queue)}]: "
                f"[bold]{track.display_title}[/bold] ({format_duration(state.duration)})"
            )

    session.add_change_callback(on_change)
    try:
        while True:
            state = await session.wait_for(
                lambda s: s.status in (PlaybackStatus.IDLE, PlaybackStatus.ERROR)
            )
            if state.status is PlaybackStatus.IDLE:
                ctx.console.print("⏹ Queue finished")
                return 0

            errors += 1
            title = state.current_track.display_title if state.current_track else "?"
            ctx.console.print(f"⚠ Could not play {title}", style="yellow")
            if errors >= MAX_CONSECUTIVE_ERRORS:
                ctx.console.print(
                    f"❌ {errors} tracks failed in a row, stopping", style="red"
                )
                return 1
            session.play_next()
    finally:
        session.remove_change_callback(on_change)


async def run_play(
    ctx: AppContext,
    shuffle: bool = False,
    repeat: Optional[str] = None,
    start: Optional[str] = None,
    volume: Optional[float] = None,
) -> int:
    """Stream the library through mpv.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    tracks = await fetch_library(ctx)
    if tracks is None:
        return 1
    if not tracks:
        ctx.console.print("Library is empty, nothing to play", style="yellow")
        return 1

    ctx = ctx.with_tracks(tracks)
    bridge = ctx.create_bridge()
    ctx = ctx.with_session(ctx.create_session(bridge))
    session = ctx.session

    if start:
        first = _find_track(tracks, start)
        if first is None:
            ctx.console.print(f"❌ No track with file hash {start}", style="red")
            return 1
    elif shuffle:
        first = session.shuffler.rng.choice(tracks)
    else:
        first = tracks[0]

    if repeat:
        session.set_repeat(repeat)
    if volume is not None:
        session.set_volume(volume)

    try:
        await bridge.start()
    except MpvUnavailableError as e:
        ctx.console.print(f"❌ {e}", style="red")
        return 1

    runner = asyncio.create_task(session.run())
    try:
        session.play_track(first, tracks)
        if shuffle:
            await session.toggle_shuffle()
        return await play_until_idle(ctx, session)
    finally:
        runner.cancel()
        try:
            await runner
        except asyncio.CancelledError:
            pass
        await bridge.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="music-stream",
        description="Music Stream - stream your library with shuffle and repeat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument("--config", help="Path to config.toml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Override the configured log level",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    tracks_parser = subparsers.add_parser("tracks", help="List library tracks")
    tracks_parser.add_argument("--limit", type=int, help="Show at most N tracks")

    play_parser = subparsers.add_parser("play", help="Play the library through mpv")
    play_parser.add_argument("--shuffle", action="store_true", help="Shuffle the library")
    play_parser.add_argument("--repeat", choices=VALID_REPEAT_MODES, help="Repeat mode")
    play_parser.add_argument("--start", metavar="FILE_HASH", help="Track to start with")
    play_parser.add_argument("--volume", type=float, help="Volume from 0.0 to 1.0")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the music-stream command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        return 1

    config = load_config(Path(args.config).expanduser() if args.config else None)
    setup_from_config(config.logging, level_override=args.log_level)
    ctx = AppContext.create(config)

    try:
        if args.subcommand == "tracks":
            return asyncio.run(run_tracks(ctx, limit=args.limit))
        if args.subcommand == "play":
            return asyncio.run(
                run_play(
                    ctx,
                    shuffle=args.shuffle,
                    repeat=args.repeat,
                    start=args.start,
                    volume=args.volume,
                )
            )
    except KeyboardInterrupt:
        ctx.console.print("\n👋 Goodbye!")
        return 0

    parser.print_help()
    return 1
