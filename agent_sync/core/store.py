"""Keyed stores backing the roster and the conversation map."""

from types import MappingProxyType
from typing import Callable, Dict, Generic, Iterable, Mapping, Optional, Tuple, TypeVar

from agent_sync.models.client import Client
from agent_sync.models.conversation import Conversation

T = TypeVar('T')


class Store(Generic[T]):
    """
    Single-writer keyed store with insertion-ordered entries.

    The owning engine is the only writer. Readers get read-only views, and
    entries are frozen dataclasses, so nothing handed out can be mutated in
    place.
    """

    def __init__(self, key_extractor: Callable[[T], str], initial_data: Iterable[T] = ()):
        """
        Initialize store with initial data.

        Args:
            key_extractor: Function to extract the key from an entry
            initial_data: Entries to load; later duplicates replace earlier ones
        """
        self.data_version = 1
        self.key_extractor = key_extractor
        self._data: Dict[str, T] = {}

        for item in initial_data:
            self._data[self.key_extractor(item)] = item

    def get(self, key: str) -> Optional[T]:
        return self._data.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._data)

    def values(self) -> Tuple[T, ...]:
        return tuple(self._data.values())

    def view(self) -> Mapping[str, T]:
        """Get a live read-only view of all entries."""
        return MappingProxyType(self._data)

    def get_data_version(self) -> int:
        """Get current data version; bumped on every mutation."""
        return self.data_version

    def put(self, item: T) -> None:
        """Insert or overwrite the entry for ``item``'s key, keeping its position if present."""
        self._data[self.key_extractor(item)] = item
        self.data_version += 1

    def add_if_absent(self, item: T) -> bool:
        """Insert ``item`` unless its key is already present. Returns whether it was added."""
        key = self.key_extractor(item)
        if key in self._data:
            return False
        self._data[key] = item
        self.data_version += 1
        return True

    def remove(self, key: str) -> Optional[T]:
        """Remove and return the entry for ``key``, or None if absent."""
        item = self._data.pop(key, None)
        if item is not None:
            self.data_version += 1
        return item

    def replace_all(self, items: Iterable[T]) -> None:
        """Replace every entry wholesale."""
        self._data = {self.key_extractor(item): item for item in items}
        self.data_version += 1


class RosterStore(Store[Client]):
    """Known remote clients keyed by client id."""

    def __init__(self, initial_data: Iterable[Client] = ()):
        super().__init__(key_extractor=lambda client: client.id, initial_data=initial_data)


class ConversationStore(Store[Conversation]):
    """Conversations keyed by the owning client's id."""

    def __init__(self, initial_data: Iterable[Conversation] = ()):
        super().__init__(key_extractor=lambda conversation: conversation.client_id,
                         initial_data=initial_data)

    def unread_for(self, client_id: str) -> int:
        """Unread count for ``client_id``; an absent conversation counts as 0."""
        conversation = self.get(client_id)
        return conversation.unread if conversation is not None else 0
