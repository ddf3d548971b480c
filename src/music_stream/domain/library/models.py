"""
Music library domain models.

Contains data structures for representing streamable tracks.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


def _parse_clock(value: str) -> Optional[float]:
    """Parse "MM:SS" or "H:MM:SS" into seconds, None if malformed."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return None
    if any(n < 0 for n in numbers) or any(n >= 60 for n in numbers[1:]):
        return None
    seconds = 0
    for n in numbers:
        seconds = seconds * 60 + n
    return float(seconds)


class Track(BaseModel):
    """A track served by the library backend.

    Identity is the opaque ``file_hash``; two Track objects with the same hash
    refer to the same track even if other fields differ. Instances are frozen:
    the playback core never mutates a track it was given.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    file_hash: str
    title: str = ""
    album: Optional[str] = None
    duration: Optional[float] = None  # in seconds, None when unknown

    @field_validator("file_hash")
    @classmethod
    def _require_hash(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("file_hash must be a non-empty string")
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _normalize_duration(cls, value: Any) -> Optional[float]:
        # Backends send numbers, numeric strings, or garbage; only a finite,
        # non-negative number counts as a known duration.
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str) and ":" in value:
            return _parse_clock(value)
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(seconds) or seconds < 0:
            return None
        return seconds

    def same_as(self, other: Optional["Track"]) -> bool:
        """Check identity against another track (by file hash)."""
        return other is not None and other.file_hash == self.file_hash

    @property
    def display_title(self) -> str:
        return self.title or "Untitled"
