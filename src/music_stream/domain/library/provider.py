"""
Provider interface for the track pool.

The playback core never talks to the backend directly. It asks a provider for
the whole library when shuffle needs a sampling universe, and treats the
provider as an opaque asynchronous source.
"""

from typing import Any, Iterable, List, Protocol, Sequence

from loguru import logger
from pydantic import ValidationError

from .models import Track


class TrackPoolError(Exception):
    """Raised when the track pool cannot be fetched."""


class TrackPoolProvider(Protocol):
    """Protocol for anything that can supply the full library.

    Example:

        class MyProvider:
            async def fetch_all(self) -> list[Track]:
                return [Track(file_hash="abc", title="Song")]
    """

    async def fetch_all(self) -> List[Track]:
        """Fetch every track in the library.

        Returns:
            List of tracks (may be empty)

        Raises:
            TrackPoolError: If the library could not be fetched
        """
        ...


class StaticTrackPool:
    """In-memory provider over a fixed list of tracks."""

    def __init__(self, tracks: Iterable[Track]):
        self._tracks = list(tracks)

    async def fetch_all(self) -> List[Track]:
        return list(self._tracks)


def parse_tracks(payload: Any) -> List[Track]:
    """Convert a JSON track list into Track models.

    Entries that fail validation (no fileHash, wrong shape) are skipped with a
    warning rather than failing the whole list.

    Args:
        payload: Decoded JSON, expected to be a list of track objects

    Returns:
        Valid tracks in payload order

    Raises:
        TrackPoolError: If payload is not a list
    """
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        raise TrackPoolError(f"Expected a list of tracks, got {type(payload).__name__}")

    tracks: List[Track] = []
    for entry in payload:
        try:
            tracks.append(Track.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed track entry: {e.error_count()} error(s)")
    return tracks
