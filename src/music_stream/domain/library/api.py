"""
Library backend API operations.

Handles the full-library fetch used to seed shuffle, and derives the
audio stream address for a track from its file hash.
"""

import asyncio
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from music_stream.core.config import ServerConfig

from .models import Track
from .provider import TrackPoolError, parse_tracks


def track_audio_url(api_base: str, file_hash: str) -> str:
    """Build the playable audio address for a track.

    The address depends on the file hash alone.
    """
    return f"{api_base.rstrip('/')}/api/track/{file_hash}/audio"


def build_headers(api_token: Optional[str]) -> Dict[str, str]:
    """Build request headers, adding Basic auth when a token is configured."""
    headers = {"Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Basic {api_token}"
    return headers


class HttpTrackPoolProvider:
    """Fetches the whole library from ``GET /api/tracks`` page by page.

    Requests run in a worker thread so the event loop never blocks on I/O.
    """

    def __init__(self, server: ServerConfig, session: Optional[requests.Session] = None):
        self.server = server
        self._session = session or requests.Session()

    async def fetch_all(self) -> List[Track]:
        return await asyncio.to_thread(self._fetch_all_sync)

    def _fetch_all_sync(self) -> List[Track]:
        tracks: List[Track] = []
        page = 0
        size = self.server.page_size

        while True:
            batch = self._fetch_page(page, size)
            tracks.extend(parse_tracks(batch))
            # A short page means there is nothing left
            if len(batch) < size:
                break
            page += 1

        logger.info(f"Fetched {len(tracks)} tracks from library ({page + 1} page(s))")
        return tracks

    def _fetch_page(self, page: int, size: int) -> List[Any]:
        url = f"{self.server.api_base.rstrip('/')}/api/tracks"
        params = {"page": page, "size": size, "sortBy": "title", "sortDir": "asc"}
        logger.debug(f"GET {url} page={page} size={size}")

        try:
            response = self._session.get(
                url,
                params=params,
                headers=build_headers(self.server.api_token),
                timeout=self.server.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            if status == 401:
                logger.error("Library request unauthorized - check api_token")
            raise TrackPoolError(f"Library request failed with HTTP {status}") from e
        except requests.exceptions.JSONDecodeError as e:
            raise TrackPoolError("Library response was not valid JSON") from e
        except requests.exceptions.RequestException as e:
            raise TrackPoolError(f"Library request failed: {e}") from e

        if not isinstance(payload, list):
            raise TrackPoolError(
                f"Expected a list of tracks, got {type(payload).__name__}"
            )
        return payload
