"""
Shared fixtures for the gateway tests.
"""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from app.deps import Settings
from app.main import create_app
from app.services.cache import TTLCache

VIRTUSIM_URL = "https://virtusim.com/api/v2/json.php"


class FakeClock:
    """Manually advanced epoch clock for TTL checks."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def upstream_response(status_code=200, **kwargs) -> httpx.Response:
    """Real httpx.Response bound to a request, as AsyncClient.get would return it."""
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request("GET", VIRTUSIM_URL),
        **kwargs,
    )


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=30, max_entries=100, clock=clock)


@pytest.fixture
def http_client():
    """Stand-in for httpx.AsyncClient; tests set get's return_value/side_effect."""
    mock_client = MagicMock(spec=httpx.AsyncClient)
    mock_client.get = AsyncMock(return_value=upstream_response(json={"pulsa": "1000"}))
    return mock_client


@pytest.fixture
def app(settings, http_client, cache):
    return create_app(settings=settings, http_client=http_client, cache=cache)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_response():
    return upstream_response
