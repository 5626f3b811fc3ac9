"""Field accessors for wire payloads."""

from datetime import datetime, timezone
from typing import Any, Dict, List

from agent_sync.core.exceptions import MalformedEvent


def require_dict(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedEvent(f"{what} must be an object, got {type(data).__name__}")
    return data


def require_str(data: Dict[str, Any], key: str, allow_empty: bool = False) -> str:
    """Return ``data[key]`` as a string or raise MalformedEvent."""
    value = data.get(key)
    if not isinstance(value, str):
        raise MalformedEvent(f"Field {key!r} must be a string, got {value!r}")
    if not allow_empty and not value:
        raise MalformedEvent(f"Field {key!r} must not be empty")
    return value


def optional_str(data: Dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise MalformedEvent(f"Field {key!r} must be a string, got {value!r}")
    return value


def require_list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise MalformedEvent(f"Field {key!r} must be a list, got {type(value).__name__}")
    return value


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    A trailing ``Z`` is accepted and naive values are taken as UTC so that
    timestamps from different sources stay comparable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError as e:
            raise MalformedEvent(f"Invalid timestamp {value!r}") from e
    else:
        raise MalformedEvent(f"Invalid timestamp {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')
