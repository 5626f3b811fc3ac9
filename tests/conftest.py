"""Shared fixtures for engine, session and API tests."""

import pytest

from agent_sync.core.config import Settings
from agent_sync.core.engine import ReconciliationEngine
from agent_sync.core.transport import InMemoryTransport


@pytest.fixture
def settings():
    """Settings with a short fetch timeout so timeout tests finish quickly."""
    return Settings(fetch_timeout_seconds=0.1, echo_window_seconds=5.0, tag_outbound_messages=False)


@pytest.fixture
def transport():
    """Connected in-memory transport."""
    return InMemoryTransport(connected=True)


@pytest.fixture
def engine(transport, settings):
    """Engine wired to the in-memory transport."""
    return ReconciliationEngine(transport, settings)
