"""
Pytest configuration and fixtures for the trail sync tests.
"""

import os

import pytest
import pytest_asyncio

from factories import BASE_URL, FakeTrailService
from trailsync.client import TrailClient
from trailsync.settings import clear_settings_cache
from trailsync.store import TrailStore

POLL_INTERVAL = 0.01


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from the developer's TRAILSYNC_* environment."""
    for name in list(os.environ):
        if name.startswith("TRAILSYNC_"):
            monkeypatch.delenv(name)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def service():
    """In-memory trail service."""
    return FakeTrailService()


@pytest_asyncio.fixture
async def client(service):
    """TrailClient wired to the fake service."""
    async with TrailClient(BASE_URL, token="test-token", transport=service.transport()) as c:
        yield c


@pytest_asyncio.fixture
async def store(client):
    """TrailStore polling fast against the fake service."""
    trail_store = TrailStore(client, poll_interval=POLL_INTERVAL)
    yield trail_store
    await trail_store.aclose()
