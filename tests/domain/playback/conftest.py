"""Fixtures for playback tests: tracks, a recording bridge and sessions."""

import random
from typing import List

import pytest

from fakes import FakeAudioBridge, make_tracks
from music_stream.domain.library.models import Track
from music_stream.domain.library.provider import StaticTrackPool
from music_stream.domain.playback.session import PlayerSession


@pytest.fixture
def tracks() -> List[Track]:
    return make_tracks(5)


@pytest.fixture
def library() -> List[Track]:
    return make_tracks(50, prefix="lib")


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def bridge() -> FakeAudioBridge:
    return FakeAudioBridge()


@pytest.fixture
def session(bridge: FakeAudioBridge, library: List[Track], rng: random.Random) -> PlayerSession:
    return PlayerSession(bridge, StaticTrackPool(library), rng=rng)
