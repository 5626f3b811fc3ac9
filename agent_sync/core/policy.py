"""Unread and merge rules applied by the reconciliation engine."""

from datetime import timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from agent_sync.models.conversation import Conversation
from agent_sync.models.message import Message


class ConversationPhase(Enum):
    """Per-conversation view state for the unread policy."""
    SELECTED = "selected"
    UNSELECTED_CLEAN = "unselected-clean"
    UNSELECTED_WITH_UNREAD = "unselected-with-unread"


def phase_of(conversation: Optional[Conversation], selected_id: Optional[str]) -> ConversationPhase:
    if conversation is not None and conversation.client_id == selected_id:
        return ConversationPhase.SELECTED
    if conversation is None or conversation.unread == 0:
        return ConversationPhase.UNSELECTED_CLEAN
    return ConversationPhase.UNSELECTED_WITH_UNREAD


def next_unread(previous: Optional[Conversation], is_selected: bool) -> int:
    """
    Unread count after an incoming message.

    The server's unread value is never consulted: it cannot know what the
    operator is viewing. A selected conversation stays at 0. An unselected
    one counts up from its previous value. A conversation seen for the first
    time has nothing to count from and starts at 0.
    """
    if previous is None or is_selected:
        return 0
    return previous.unread + 1


def _is_echo(local: Message, candidate: Message, echo_window: timedelta) -> bool:
    if not candidate.is_from_agent:
        return False
    if local.correlation_id and candidate.correlation_id:
        return local.correlation_id == candidate.correlation_id
    return (candidate.text == local.text
            and abs(candidate.timestamp - local.timestamp) <= echo_window)


def merge_messages(prior: Sequence[Message], incoming: Sequence[Message],
                   echo_window: timedelta) -> Tuple[Message, ...]:
    """
    Merge a server broadcast into the locally known message log.

    Server messages are taken as they come. Prior messages the broadcast does
    not carry are kept, except optimistic local sends that the broadcast
    echoes back; those are replaced by the server copy. The result is ordered
    by timestamp, stable for equal timestamps.

    Args:
        prior: Messages currently held for the conversation
        incoming: Messages carried by the server broadcast
        echo_window: Maximum clock distance for matching an echo by text

    Returns:
        The merged message log; never shorter than ``prior`` less its echoed sends
    """
    merged: List[Message] = list(incoming)
    incoming_ids = {message.id for message in incoming}
    prior_ids = {message.id for message in prior}
    # Agent messages already held locally are not new, so they cannot echo a pending send.
    echoes = [message for message in incoming
              if message.is_from_agent and message.id not in prior_ids]

    for message in prior:
        if message.id in incoming_ids:
            continue
        if message.is_local:
            echo = next((candidate for candidate in echoes
                         if _is_echo(message, candidate, echo_window)), None)
            if echo is not None:
                echoes.remove(echo)
                continue
        merged.append(message)

    merged.sort(key=lambda message: message.timestamp)
    return tuple(merged)
