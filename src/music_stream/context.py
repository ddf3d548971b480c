"""Application context for explicit state passing.

This module provides the AppContext dataclass that bundles the configuration,
the library provider and the console used by the CLI commands, so nothing is
reached through module-level globals.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from rich.console import Console

from music_stream.core.config import Config
from music_stream.domain.library.api import HttpTrackPoolProvider
from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import TrackPoolProvider
from music_stream.domain.playback.player import MpvAudioBridge
from music_stream.domain.playback.session import PlayerSession


@dataclass
class AppContext:
    """Application context passed to command handlers.

    Attributes:
        config: Application configuration
        provider: Source of the full library
        console: Rich Console for formatted output
        tracks: Library tracks fetched so far (empty until loaded)
        session: Player session, once playback has been set up
    """

    config: Config
    provider: TrackPoolProvider
    console: Console
    tracks: List[Track] = field(default_factory=list)
    session: Optional[PlayerSession] = None

    @classmethod
    def create(
        cls,
        config: Config,
        console: Optional[Console] = None,
        provider: Optional[TrackPoolProvider] = None,
    ) -> "AppContext":
        """Create initial application context.

        Args:
            config: Application configuration
            console: Optional Rich Console instance
            provider: Optional provider (defaults to the HTTP library backend)

        Returns:
            New AppContext with no tracks loaded
        """
        return cls(
            config=config,
            provider=provider or HttpTrackPoolProvider(config.server),
            console=console or Console(),
        )

    def with_tracks(self, tracks: List[Track]) -> "AppContext":
        """Return new context with updated tracks, other fields unchanged."""
        return replace(self, tracks=list(tracks))

    def with_session(self, session: PlayerSession) -> "AppContext":
        """Return new context holding session, other fields unchanged."""
        return replace(self, session=session)

    def create_bridge(self) -> MpvAudioBridge:
        """Build an mpv bridge for the configured backend."""
        return MpvAudioBridge(
            self.config.server.api_base,
            socket_path=self.config.player.mpv_socket_path,
            api_token=self.config.server.api_token,
        )

    def create_session(self, bridge: MpvAudioBridge) -> PlayerSession:
        """Build a player session on bridge, sharing this context's provider."""
        session = PlayerSession.from_config(self.config, bridge, self.provider)
        if self.tracks:
            session.shuffler.prime(self.tracks)
        return session
