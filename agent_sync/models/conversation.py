"""Conversation model: per-client message log with an unread counter."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Tuple

from agent_sync.core.exceptions import MalformedEvent
from agent_sync.models.message import Message
from agent_sync.models.validation import require_dict, require_list, require_str


@dataclass(frozen=True)
class Conversation:
    """Ordered, append-only message history for one client."""

    client_id: str
    messages: Tuple[Message, ...] = field(default_factory=tuple)
    unread: int = 0

    def __post_init__(self):
        if self.unread < 0:
            raise ValueError(f"unread must be >= 0, got {self.unread}")

    def with_unread(self, unread: int) -> 'Conversation':
        return replace(self, unread=unread)

    def with_messages(self, messages: Tuple[Message, ...]) -> 'Conversation':
        return replace(self, messages=tuple(messages))

    def append(self, message: Message) -> 'Conversation':
        """Return a copy with ``message`` appended."""
        return replace(self, messages=self.messages + (message,))

    def to_dict(self) -> Dict[str, Any]:
        """Convert conversation to its wire representation."""
        return {
            'clientId': self.client_id,
            'messages': [message.to_dict() for message in self.messages],
            'unread': self.unread
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Conversation':
        """
        Create Conversation instance from a wire payload.

        A missing ``unread`` reads as 0. Messages addressed to another client
        are rejected.

        Raises:
            MalformedEvent: If a required field is missing or invalid
        """
        data = require_dict(data, "conversation")
        client_id = require_str(data, 'clientId')
        messages = tuple(Message.from_dict(item) for item in require_list(data, 'messages'))
        for message in messages:
            if message.client_id != client_id:
                raise MalformedEvent(
                    f"Message {message.id!r} belongs to {message.client_id!r}, not {client_id!r}"
                )

        unread = data.get('unread') or 0
        if not isinstance(unread, int) or isinstance(unread, bool) or unread < 0:
            raise MalformedEvent(f"Field 'unread' must be a non-negative integer, got {unread!r}")
        return cls(client_id=client_id, messages=messages, unread=unread)

    def __repr__(self) -> str:
        return (f"Conversation(client_id={self.client_id!r}, "
                f"messages={len(self.messages)}, unread={self.unread!r})")
