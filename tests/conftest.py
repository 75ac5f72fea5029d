"""Pytest fixtures and shared test configuration.

Every test exercises the real ApiClient against a stateful fake backend
served through httpx.MockTransport. No network access.

Fixtures:
    - mock_session_id: Consistent session ID for tests
    - clock: Controllable time source
    - backend: Fake chat backend with call recording
    - api: ApiClient wired to the fake backend
"""

from collections.abc import AsyncGenerator

import httpx
import pytest

from ragchat.api import ApiClient
from tests.fakes import BASE_URL, FakeBackend, FakeClock


@pytest.fixture
def mock_session_id() -> str:
    """Generate consistent session ID for testing.

    Returns:
        Predictable session ID for test assertions.
    """
    return "test-session-12345"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def api(backend: FakeBackend) -> AsyncGenerator[ApiClient]:
    """ApiClient talking to the fake backend.

    Yields:
        Configured ApiClient; the underlying httpx client is closed afterwards.
    """
    transport = httpx.MockTransport(backend.handle)
    async with httpx.AsyncClient(transport=transport) as http_client:
        yield ApiClient(BASE_URL, http_client=http_client)
