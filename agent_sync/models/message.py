"""Message model for conversation entries."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from agent_sync.core.exceptions import MalformedEvent
from agent_sync.models.validation import (
    format_timestamp,
    optional_str,
    parse_timestamp,
    require_dict,
    require_str,
)


@dataclass(frozen=True)
class Message:
    """
    A single immutable conversation entry.

    ``is_local`` marks messages authored by this agent and appended
    optimistically before the server has seen them; it is never sent on the
    wire.
    """

    id: str
    text: str
    client_id: str
    timestamp: datetime
    is_from_agent: bool = False
    correlation_id: Optional[str] = None
    is_local: bool = False

    @classmethod
    def local(cls, client_id: str, text: str, sent_at: Optional[datetime] = None) -> 'Message':
        """Build an optimistic agent message whose id is derived from the send time."""
        sent_at = sent_at or datetime.now(timezone.utc)
        return cls(
            id=str(int(sent_at.timestamp() * 1000)),
            text=text,
            client_id=client_id,
            timestamp=sent_at,
            is_from_agent=True,
            correlation_id=uuid.uuid4().hex,
            is_local=True
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to its wire representation."""
        result = {
            'id': self.id,
            'text': self.text,
            'clientId': self.client_id,
            'timestamp': format_timestamp(self.timestamp),
            'isFromAgent': self.is_from_agent
        }
        if self.correlation_id:
            result['correlationId'] = self.correlation_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """
        Create Message instance from a wire payload.

        Raises:
            MalformedEvent: If a required field is missing or invalid
        """
        data = require_dict(data, "message")
        is_from_agent = data.get('isFromAgent', False)
        if not isinstance(is_from_agent, bool):
            raise MalformedEvent(f"Field 'isFromAgent' must be a boolean, got {is_from_agent!r}")
        message_id = data.get('id')
        if isinstance(message_id, int) and not isinstance(message_id, bool):
            message_id = str(message_id)
        return cls(
            id=require_str({'id': message_id}, 'id'),
            text=require_str(data, 'text', allow_empty=True),
            client_id=require_str(data, 'clientId'),
            timestamp=parse_timestamp(data.get('timestamp')),
            is_from_agent=is_from_agent,
            correlation_id=optional_str(data, 'correlationId') or None
        )

    def __repr__(self) -> str:
        return f"Message(id={self.id!r}, client_id={self.client_id!r}, is_from_agent={self.is_from_agent!r})"
