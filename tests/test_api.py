"""Tests for the FastAPI presentation endpoints."""

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from agent_sync.core.engine import ReconciliationEngine
from agent_sync.core.session import AgentSession
from agent_sync.core.transport import InMemoryTransport
from agent_sync.main import configure_logging, create_app, queue_listener
from factories import client_payload, conversation_payload, message_payload, snapshot_payload


@pytest.fixture
def session(settings):
    transport = InMemoryTransport()
    transport.respond(
        "get-client-conversations",
        lambda data: {
            "success": True,
            "data": conversation_payload(data["clientId"], [message_payload("m1", data["clientId"])], unread=5)
        }
    )
    return AgentSession(transport, ReconciliationEngine(transport, settings))


@pytest.fixture
def client(session, settings):
    """Test client whose lifespan starts and stops the session."""
    with TestClient(create_app(session=session, settings=settings)) as test_client:
        session.engine.dispatch("existing-conversations", snapshot_payload(
            [client_payload("c1"), client_payload("c2")],
            [conversation_payload("c1", unread=2)]
        ))
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "connected": True, "connected_clients": 2}


def test_state_lists_roster_with_unread(client):
    """Test a client without a conversation reads as zero unread."""
    body = client.get("/state").json()
    assert [(entry["id"], entry["unread"]) for entry in body["clients"]] == [("c1", 2), ("c2", 0)]
    assert body["selected"] is None
    assert body["selectionStatus"] == "none"


def test_conversation_endpoint(client):
    assert client.get("/conversations/c2").json() == {"clientId": "c2", "messages": [], "unread": 0}
    assert client.get("/conversations/c1").json()["unread"] == 2
    assert client.get("/conversations/nobody").status_code == 404


def test_select_and_send(client, session):
    """Test selecting read-repairs the conversation and sending appends to it."""
    response = client.post("/select/c1")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["retry"] is False
    assert body["conversation"]["unread"] == 0

    response = client.post("/messages", json={"text": "hello"})
    assert response.json()["sent"] is True
    assert [m["id"] for m in client.get("/conversations/c1").json()["messages"]][0] == "m1"
    assert len(session.engine.get_conversation("c1").messages) == 2


def test_select_unknown_client(client):
    assert client.post("/select/nobody").status_code == 404


def test_select_failure_offers_retry(client, session):
    session.transport.respond("get-client-conversations", lambda data: {"success": False})
    body = client.post("/select/c2").json()
    assert body["status"] == "failed"
    assert body["retry"] is True
    assert client.get("/state").json()["selectionStatus"] == "failed"


def test_send_without_selection(client, session):
    response = client.post("/messages", json={"text": "hello"})
    assert response.json() == {"sent": False, "message": None}
    assert session.transport.emitted_events("agent-message") == []


def test_inactive_session_is_unavailable(session, settings):
    """Test intents are refused before the session has started."""
    test_client = TestClient(create_app(session=session, settings=settings))
    assert test_client.post("/messages", json={"text": "hello"}).status_code == 503


@pytest.mark.asyncio
async def test_events_queue_receives_changes(session):
    """Test the change stream subscription sees engine mutations."""
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = session.engine.subscribe(queue.put_nowait)
    session.engine.dispatch("existing-conversations", snapshot_payload([client_payload("c1")], []))
    change = await asyncio.wait_for(queue.get(), 1)
    unsubscribe()
    assert change["type"] == "snapshot"


def test_events_queue_drops_changes_when_full(caplog):
    """Test a slow stream consumer loses records instead of growing the queue."""
    queue: asyncio.Queue = asyncio.Queue(maxsize=1)
    listener = queue_listener(queue)
    with caplog.at_level(logging.WARNING, logger="agent_sync.main"):
        listener({"type": "snapshot", "clientId": None})
        listener({"type": "message", "clientId": "c1"})
    assert queue.qsize() == 1
    assert queue.get_nowait()["type"] == "snapshot"
    assert "dropping message change" in caplog.text


def test_configure_logging_accepts_lowercase_level(monkeypatch):
    captured = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))
    configure_logging("debug")
    assert captured["level"] == "DEBUG"
