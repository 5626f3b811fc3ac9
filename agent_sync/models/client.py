"""Client model for remote chat participants."""

from dataclasses import dataclass
from typing import Any, Dict

from agent_sync.models.validation import optional_str, require_dict, require_str


@dataclass(frozen=True)
class Client:
    """A remote client known to the agent's roster."""

    id: str
    name: str
    transport_identity: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert client to its wire representation."""
        return {
            'id': self.id,
            'name': self.name,
            'socketId': self.transport_identity
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Client':
        """
        Create Client instance from a wire payload.

        Raises:
            MalformedEvent: If ``id`` is missing or not a string
        """
        data = require_dict(data, "client")
        client_id = require_str(data, 'id')
        return cls(
            id=client_id,
            name=optional_str(data, 'name', default=client_id),
            transport_identity=optional_str(data, 'socketId')
        )

    def __repr__(self) -> str:
        return f"Client(id={self.id!r}, name={self.name!r})"
