from __future__ import annotations

import logging

import pytest
import pytest_asyncio

from routerchat.llm.client import ChatClient
from routerchat.llm.mock import MockUpstream
from tests.utils import FakeClock, RecordingSleep


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_upstream() -> MockUpstream:
    return MockUpstream(chunk_size=3)


@pytest_asyncio.fixture
async def mock_client(mock_upstream: MockUpstream):
    async with ChatClient(api_key="mock-key", transport=mock_upstream.transport()) as client:
        yield client


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    for key in ("OPENROUTER_API_KEY", "OPENROUTER_BASE_URL", "ROUTERCHAT_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    yield
    # CLI runs install console handlers; put the library logger back to its silent default.
    package_logger = logging.getLogger("routerchat")
    package_logger.handlers = [logging.NullHandler()]
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
