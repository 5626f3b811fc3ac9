"""Unit tests for model classes."""

from datetime import datetime, timezone

import pytest

from agent_sync.core.exceptions import MalformedEvent
from agent_sync.models.client import Client
from agent_sync.models.conversation import Conversation
from agent_sync.models.event import (
    AgentMessageRequest,
    ClientConnectedEvent,
    IncomingMessageEvent,
    SnapshotEvent,
    parse_event,
)
from agent_sync.models.message import Message
from factories import client_payload, conversation_payload, message_payload


def test_client_from_dict():
    """Test Client creation from the wire format."""
    client = Client.from_dict({"id": "c1", "name": "Alice", "socketId": "abc"})
    assert client == Client("c1", "Alice", "abc")
    assert client.to_dict() == {"id": "c1", "name": "Alice", "socketId": "abc"}


def test_client_defaults():
    """Test that a missing name falls back to the id and identity stays empty."""
    client = Client.from_dict({"id": "c1"})
    assert client.name == "c1"
    assert client.transport_identity == ""


def test_client_requires_id():
    with pytest.raises(MalformedEvent):
        Client.from_dict({"name": "Alice"})


def test_message_parses_zulu_timestamp():
    """Test Message creation with an ISO timestamp ending in Z."""
    message = Message.from_dict(message_payload("m1", "c1", text="hello", from_agent=True))
    assert message.id == "m1"
    assert message.text == "hello"
    assert message.is_from_agent is True
    assert message.timestamp == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert message.to_dict()["timestamp"] == "2024-05-01T10:00:00Z"


def test_message_naive_timestamp_is_utc():
    message = Message.from_dict(message_payload("m1", "c1", timestamp="2024-05-01T10:00:00"))
    assert message.timestamp.tzinfo is not None


def test_message_numeric_id_is_stringified():
    payload = message_payload("m1", "c1")
    payload["id"] = 1714557600000
    assert Message.from_dict(payload).id == "1714557600000"


def test_message_rejects_bad_timestamp():
    with pytest.raises(MalformedEvent):
        Message.from_dict(message_payload("m1", "c1", timestamp="yesterday"))


def test_local_message():
    """Test optimistic local messages get a time-derived id and a correlation id."""
    sent_at = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    message = Message.local("c1", "hello", sent_at=sent_at)
    assert message.id == str(int(sent_at.timestamp() * 1000))
    assert message.is_from_agent is True
    assert message.is_local is True
    assert message.correlation_id


def test_conversation_missing_unread_reads_as_zero():
    payload = conversation_payload("c1", [message_payload("m1", "c1")])
    del payload["unread"]
    conversation = Conversation.from_dict(payload)
    assert conversation.unread == 0
    assert len(conversation.messages) == 1


def test_conversation_rejects_foreign_message():
    """Test a message addressed to another client is rejected."""
    with pytest.raises(MalformedEvent):
        Conversation.from_dict(conversation_payload("c1", [message_payload("m1", "c2")]))


@pytest.mark.parametrize("unread", [-1, "3", True])
def test_conversation_rejects_invalid_unread(unread):
    with pytest.raises(MalformedEvent):
        Conversation.from_dict(conversation_payload("c1", unread=unread))


def test_conversation_append_returns_copy():
    conversation = Conversation("c1")
    message = Message.local("c1", "hello")
    updated = conversation.append(message)
    assert conversation.messages == ()
    assert updated.messages == (message,)


def test_parse_snapshot_event():
    event = parse_event("existing-conversations", {
        "clients": [client_payload("c1")],
        "conversations": [conversation_payload("c1", unread=2)]
    })
    assert isinstance(event, SnapshotEvent)
    assert event.clients[0].id == "c1"
    assert event.conversations[0].unread == 2


def test_parse_connected_event_requires_matching_conversation():
    with pytest.raises(MalformedEvent):
        parse_event("user-connected", {
            "clientId": "c1", "name": "Alice", "conversation": conversation_payload("c2")
        })

    event = parse_event("user-connected", {
        "clientId": "c1", "name": "Alice", "conversation": conversation_payload("c1")
    })
    assert isinstance(event, ClientConnectedEvent)
    assert event.name == "Alice"


def test_parse_incoming_message_missing_client_id():
    """Test a conversation without clientId is malformed."""
    with pytest.raises(MalformedEvent):
        parse_event("new-user-message", {"conversation": {"messages": [], "unread": 0}})

    event = parse_event("new-user-message", {"conversation": conversation_payload("c1")})
    assert isinstance(event, IncomingMessageEvent)


@pytest.mark.parametrize("name", ["no-such-event", "agent-message"])
def test_parse_rejects_non_inbound_events(name):
    with pytest.raises(MalformedEvent):
        parse_event(name, {})


def test_agent_message_request_payload():
    """Test the outbound payload only carries correlationId when one is set."""
    assert AgentMessageRequest("c1", "hi").to_dict() == {"clientId": "c1", "text": "hi"}
    assert AgentMessageRequest("c1", "hi", "x").to_dict() == {
        "clientId": "c1", "text": "hi", "correlationId": "x"
    }
