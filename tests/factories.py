"""Wire payload builders shared by the tests."""

from typing import Any, Dict, Iterable, List, Optional


def message_payload(message_id: str, client_id: str, text: str = "hi",
                    timestamp: str = "2024-05-01T10:00:00Z", from_agent: bool = False) -> Dict[str, Any]:
    return {
        "id": message_id,
        "text": text,
        "clientId": client_id,
        "timestamp": timestamp,
        "isFromAgent": from_agent
    }


def conversation_payload(client_id: str, messages: Iterable[Dict[str, Any]] = (),
                         unread: int = 0) -> Dict[str, Any]:
    return {"clientId": client_id, "messages": list(messages), "unread": unread}


def client_payload(client_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    return {"id": client_id, "name": name or client_id.upper(), "socketId": f"sock-{client_id}"}


def snapshot_payload(clients: List[Dict[str, Any]],
                     conversations: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"conversations": conversations, "clients": clients}
