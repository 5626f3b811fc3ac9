"""Event models for the transport surface between agent and server."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from agent_sync.core.exceptions import MalformedEvent
from agent_sync.models.client import Client
from agent_sync.models.conversation import Conversation
from agent_sync.models.validation import optional_str, require_dict, require_list, require_str


class EventType(Enum):
    """Named events exchanged over the transport."""
    REGISTER_AGENT = "register-agent"
    EXISTING_CONVERSATIONS = "existing-conversations"
    USER_CONNECTED = "user-connected"
    USER_DISCONNECTED = "user-disconnected"
    NEW_USER_MESSAGE = "new-user-message"
    GET_CLIENT_CONVERSATIONS = "get-client-conversations"
    AGENT_MESSAGE = "agent-message"


INBOUND_EVENTS = (
    EventType.EXISTING_CONVERSATIONS,
    EventType.USER_CONNECTED,
    EventType.USER_DISCONNECTED,
    EventType.NEW_USER_MESSAGE,
)


@dataclass(frozen=True)
class SnapshotEvent:
    """Full roster and conversation state pushed once per session."""

    conversations: Tuple[Conversation, ...]
    clients: Tuple[Client, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotEvent':
        data = require_dict(data, "snapshot")
        return cls(
            conversations=tuple(Conversation.from_dict(item) for item in require_list(data, 'conversations')),
            clients=tuple(Client.from_dict(item) for item in require_list(data, 'clients'))
        )


@dataclass(frozen=True)
class ClientConnectedEvent:
    client_id: str
    name: str
    conversation: Conversation

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConnectedEvent':
        data = require_dict(data, "user-connected payload")
        client_id = require_str(data, 'clientId')
        conversation = Conversation.from_dict(data.get('conversation'))
        if conversation.client_id != client_id:
            raise MalformedEvent(
                f"Conversation for {conversation.client_id!r} sent with connect of {client_id!r}"
            )
        return cls(
            client_id=client_id,
            name=optional_str(data, 'name', default=client_id),
            conversation=conversation
        )


@dataclass(frozen=True)
class ClientDisconnectedEvent:
    client_id: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientDisconnectedEvent':
        data = require_dict(data, "user-disconnected payload")
        return cls(client_id=require_str(data, 'clientId'))


@dataclass(frozen=True)
class IncomingMessageEvent:
    """A new client message, carried as the full conversation rather than a delta."""

    conversation: Conversation

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IncomingMessageEvent':
        data = require_dict(data, "new-user-message payload")
        return cls(conversation=Conversation.from_dict(data.get('conversation')))


InboundEvent = Union[SnapshotEvent, ClientConnectedEvent, ClientDisconnectedEvent, IncomingMessageEvent]

_PARSERS = {
    EventType.EXISTING_CONVERSATIONS: SnapshotEvent.from_dict,
    EventType.USER_CONNECTED: ClientConnectedEvent.from_dict,
    EventType.USER_DISCONNECTED: ClientDisconnectedEvent.from_dict,
    EventType.NEW_USER_MESSAGE: IncomingMessageEvent.from_dict,
}


def parse_event(name: str, payload: Any) -> InboundEvent:
    """
    Build a typed inbound event from its transport name and payload.

    Args:
        name: Event name as received from the transport
        payload: Decoded JSON payload

    Returns:
        The typed event

    Raises:
        MalformedEvent: If the name is not an inbound event or the payload is invalid
    """
    try:
        event_type = EventType(name)
    except ValueError as e:
        raise MalformedEvent(f"Unknown event: {name!r}") from e

    parser = _PARSERS.get(event_type)
    if parser is None:
        raise MalformedEvent(f"Event {name!r} is not an inbound event")
    return parser(payload)


@dataclass(frozen=True)
class FetchConversationRequest:
    client_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'clientId': self.client_id}


@dataclass(frozen=True)
class AgentMessageRequest:
    """Outbound agent text; fire-and-forget."""

    client_id: str
    text: str
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'clientId': self.client_id, 'text': self.text}
        if self.correlation_id:
            result['correlationId'] = self.correlation_id
        return result
