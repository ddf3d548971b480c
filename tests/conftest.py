"""Pytest configuration shared by all tests."""

import pytest


@pytest.fixture
def anyio_backend():
    """The playback code is written against asyncio."""
    return "asyncio"
