"""Library domain - tracks and the pool they are sampled from.

This domain handles:
- The Track model (identity by file hash)
- Fetching the full library from the backend
- Deriving the audio address from a file hash
"""

from .api import (
    HttpTrackPoolProvider,
    build_headers,
    track_audio_url,
)
from .models import Track
from .provider import (
    StaticTrackPool,
    TrackPoolError,
    TrackPoolProvider,
    parse_tracks,
)

__all__ = [
    "Track",
    "HttpTrackPoolProvider",
    "StaticTrackPool",
    "TrackPoolError",
    "TrackPoolProvider",
    "parse_tracks",
    "build_headers",
    "track_audio_url",
]
