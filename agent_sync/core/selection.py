"""Selection state: the single conversation the operator is looking at."""

from enum import Enum
from typing import Optional


class SelectionStatus(Enum):
    """What the presentation layer should show for the selected conversation."""
    NONE = "none"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class SelectionState:
    """
    Mutable reference to the currently selected client id.

    Handlers read ``current`` when an event is processed rather than keeping
    a copy from subscription time. Every ``select`` bumps a generation so
    that a slow fetch for an earlier selection cannot mark a later one ready.
    """

    def __init__(self):
        self._client_id: Optional[str] = None
        self._generation = 0
        self.status = SelectionStatus.NONE
        self.error: Optional[str] = None

    @property
    def current(self) -> Optional[str]:
        return self._client_id

    @property
    def generation(self) -> int:
        return self._generation

    def is_selected(self, client_id: str) -> bool:
        return self._client_id is not None and self._client_id == client_id

    def select(self, client_id: str) -> int:
        """Focus ``client_id`` and return the generation of this selection."""
        self._client_id = client_id
        self._generation += 1
        self.status = SelectionStatus.LOADING
        self.error = None
        return self._generation

    def clear(self) -> None:
        self._client_id = None
        self._generation += 1
        self.status = SelectionStatus.NONE
        self.error = None

    def mark_ready(self, generation: int) -> bool:
        if generation != self._generation:
            return False
        self.status = SelectionStatus.READY
        self.error = None
        return True

    def mark_failed(self, generation: int, error: str) -> bool:
        if generation != self._generation:
            return False
        self.status = SelectionStatus.FAILED
        self.error = error
        return True

    def __repr__(self) -> str:
        return f"SelectionState(client_id={self._client_id!r}, status={self.status.value!r})"
