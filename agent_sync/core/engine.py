"""Reconciliation engine: applies server pushes and operator intents to local state."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from agent_sync.core.config import Settings, get_settings
from agent_sync.core.exceptions import (
    FetchFailure,
    FetchTimeout,
    MalformedEvent,
    SendFailure,
    TransportError,
    UnknownSelectionTarget,
)
from agent_sync.core.policy import merge_messages, next_unread
from agent_sync.core.selection import SelectionState
from agent_sync.core.store import ConversationStore, RosterStore
from agent_sync.core.transport import Transport
from agent_sync.models.client import Client
from agent_sync.models.conversation import Conversation
from agent_sync.models.event import (
    AgentMessageRequest,
    ClientConnectedEvent,
    ClientDisconnectedEvent,
    EventType,
    FetchConversationRequest,
    IncomingMessageEvent,
    InboundEvent,
    SnapshotEvent,
    parse_event,
)
from agent_sync.models.message import Message

logger = logging.getLogger(__name__)

ChangeListener = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a read-repair fetch: a conversation or the failure that prevented it."""

    conversation: Optional[Conversation] = None
    error: Optional[FetchFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReconciliationEngine:
    """
    Owns the roster, the conversation map and the selection.

    The engine is the only writer of its stores. Inbound handlers are plain
    synchronous methods, so on a single event loop exactly one of them runs
    at a time; only ``select_conversation`` and ``send_message`` await the
    transport. Readers use the ``*_view`` accessors, which never hand out
    anything mutable.
    """

    def __init__(self, transport: Transport, settings: Optional[Settings] = None):
        self.transport = transport
        self.settings = settings or get_settings()
        self.roster = RosterStore()
        self.conversations = ConversationStore()
        self.selection = SelectionState()
        self._listeners: List[ChangeListener] = []
        self._snapshot_seen = False

    # Read side

    def roster_view(self) -> Tuple[Client, ...]:
        return self.roster.values()

    def conversations_view(self) -> Mapping[str, Conversation]:
        return self.conversations.view()

    def get_conversation(self, client_id: str) -> Optional[Conversation]:
        return self.conversations.get(client_id)

    def unread_for(self, client_id: str) -> int:
        return self.conversations.unread_for(client_id)

    def selected_conversation(self) -> Optional[Conversation]:
        client_id = self.selection.current
        if client_id is None:
            return None
        return self.conversations.get(client_id)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register ``listener`` for change records; returns a callable that unregisters it.

        Listeners run synchronously after each applied mutation.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change_type: str, client_id: Optional[str] = None) -> None:
        change = {
            "type": change_type,
            "clientId": client_id,
            "selected": self.selection.current,
            "version": self.roster.get_data_version() + self.conversations.get_data_version()
        }
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Change listener failed on {change_type}")

    # Inbound events

    def dispatch(self, name: str, payload: Any) -> bool:
        """
        Parse and apply one inbound transport event.

        A bad event is logged and dropped; it never affects other conversations
        or stops the engine.

        Args:
            name: Transport event name
            payload: Decoded event payload

        Returns:
            True if the event was applied
        """
        try:
            self.apply(parse_event(name, payload))
        except MalformedEvent as e:
            logger.warning(f"Dropping malformed {name} event: {str(e)}")
            return False
        except Exception:
            logger.exception(f"Failed to apply {name} event")
            return False
        return True

    def apply(self, event: InboundEvent) -> None:
        if isinstance(event, SnapshotEvent):
            self.on_snapshot(event)
        elif isinstance(event, ClientConnectedEvent):
            self.on_client_connected(event)
        elif isinstance(event, ClientDisconnectedEvent):
            self.on_client_disconnected(event)
        elif isinstance(event, IncomingMessageEvent):
            self.on_incoming_message(event)
        else:
            raise MalformedEvent(f"Unsupported event {event!r}")

    def on_snapshot(self, event: SnapshotEvent) -> None:
        """
        Replace roster and conversations wholesale.

        Clients without a listed conversation stay absent from the map.
        Conversations for clients missing from the roster are dropped.
        """
        if self._snapshot_seen:
            logger.warning("Received a second snapshot in this session, replacing state")
        self._snapshot_seen = True

        self.roster.replace_all(event.clients)
        conversations = []
        for conversation in event.conversations:
            if conversation.client_id not in self.roster:
                logger.warning(f"Dropping snapshot conversation for unknown client {conversation.client_id}")
                continue
            conversations.append(conversation)
        self.conversations.replace_all(conversations)

        selected = self.selection.current
        if selected is not None:
            if selected not in self.roster:
                logger.info(f"Selected client {selected} missing from snapshot, clearing selection")
                self.selection.clear()
            else:
                self._clear_unread(selected)

        logger.info(f"Snapshot applied: {len(self.roster)} clients, {len(self.conversations)} conversations")
        self._notify("snapshot")

    def on_client_connected(self, event: ClientConnectedEvent) -> None:
        """Add the client if new and store its conversation as the server sent it."""
        added = self.roster.add_if_absent(Client(id=event.client_id, name=event.name))
        conversation = event.conversation
        if self.selection.is_selected(event.client_id):
            conversation = conversation.with_unread(0)
        self.conversations.put(conversation)

        logger.info(f"Client {event.client_id} connected" + ("" if added else " (already known)"))
        self._notify("client-connected", event.client_id)

    def on_client_disconnected(self, event: ClientDisconnectedEvent) -> None:
        client_id = event.client_id
        removed = self.roster.remove(client_id)
        self.conversations.remove(client_id)
        if removed is None:
            logger.debug(f"Disconnect for unknown client {client_id}")
            return

        if self.selection.is_selected(client_id):
            self.selection.clear()
        logger.info(f"Client {client_id} disconnected")
        self._notify("client-disconnected", client_id)

    def on_incoming_message(self, event: IncomingMessageEvent) -> None:
        """
        Merge a full-conversation broadcast and recompute its unread count.

        Selection is read now, at processing time. The server's unread value
        is ignored. Only connect and snapshot events add clients, so a message
        for a client outside the roster is rejected.

        Raises:
            MalformedEvent: If the client is not in the roster
        """
        incoming = event.conversation
        client_id = incoming.client_id
        if client_id not in self.roster:
            raise MalformedEvent(f"Message for client {client_id} not in roster")

        previous = self.conversations.get(client_id)
        unread = next_unread(previous, self.selection.is_selected(client_id))
        messages = merge_messages(
            previous.messages if previous is not None else (),
            incoming.messages,
            self.settings.echo_window
        )
        self.conversations.put(Conversation(client_id=client_id, messages=messages, unread=unread))
        self._notify("message", client_id)

    # Operator intents

    async def select_conversation(self, client_id: str) -> FetchResult:
        """
        Focus ``client_id`` and read-repair its conversation from the server.

        The selection changes even when the fetch fails; the failure is kept on
        the selection state so the presentation layer can offer a retry.

        Args:
            client_id: Client to select

        Returns:
            The fetched conversation, or the fetch failure

        Raises:
            UnknownSelectionTarget: If ``client_id`` is not in the roster
        """
        if client_id not in self.roster:
            raise UnknownSelectionTarget(client_id)

        generation = self.selection.select(client_id)
        self._clear_unread(client_id)
        self._notify("selected", client_id)

        try:
            conversation = await self._fetch_conversation(client_id)
        except FetchFailure as e:
            logger.warning(f"Fetching conversation for {client_id} failed: {str(e)}")
            self.selection.mark_failed(generation, str(e))
            self._notify("fetch-failed", client_id)
            return FetchResult(error=e)

        if client_id not in self.roster:
            error = FetchFailure(f"Client {client_id} disconnected during fetch")
            logger.info(str(error))
            return FetchResult(error=error)

        conversation = conversation.with_unread(0)
        self.conversations.put(conversation)
        self.selection.mark_ready(generation)
        self._notify("fetched", client_id)
        return FetchResult(conversation=conversation)

    async def _fetch_conversation(self, client_id: str) -> Conversation:
        timeout = self.settings.fetch_timeout_seconds
        try:
            ack = await self.transport.call(
                EventType.GET_CLIENT_CONVERSATIONS.value,
                FetchConversationRequest(client_id).to_dict(),
                timeout
            )
        except asyncio.TimeoutError as e:
            raise FetchTimeout(f"No answer for {client_id} within {timeout}s") from e
        except TransportError as e:
            raise FetchFailure(str(e)) from e

        if not isinstance(ack, dict) or ack.get("success") is not True:
            reason = ack.get("error") if isinstance(ack, dict) else None
            raise FetchFailure(reason or "Server reported an unsuccessful fetch")
        try:
            conversation = Conversation.from_dict(ack.get("data"))
        except MalformedEvent as e:
            raise FetchFailure(f"Malformed conversation in acknowledgment: {str(e)}") from e
        if conversation.client_id != client_id:
            raise FetchFailure(f"Asked for {client_id}, got conversation of {conversation.client_id}")
        return conversation

    async def send_message(self, text: str) -> Optional[Message]:
        """
        Send ``text`` to the selected client and append it optimistically.

        Nothing happens when no conversation is selected or the text is blank.

        Returns:
            The locally appended message, or None if nothing was sent

        Raises:
            SendFailure: If the transport refuses the emission
        """
        client_id = self.selection.current
        if not client_id or not text or not text.strip():
            return None

        conversation = self.conversations.get(client_id) or Conversation(client_id=client_id)
        message = self._local_message(conversation, text)
        request = AgentMessageRequest(
            client_id=client_id,
            text=text,
            correlation_id=message.correlation_id if self.settings.tag_outbound_messages else None
        )
        try:
            await self.transport.emit(EventType.AGENT_MESSAGE.value, request.to_dict())
        except TransportError as e:
            raise SendFailure(f"Failed to send message to {client_id}: {str(e)}") from e

        # The selection or the conversation may have moved while emitting.
        conversation = self.conversations.get(client_id) or Conversation(client_id=client_id)
        if client_id in self.roster:
            self.conversations.put(conversation.append(message))
            self._notify("sent", client_id)
        return message

    @staticmethod
    def _local_message(conversation: Conversation, text: str) -> Message:
        message = Message.local(conversation.client_id, text)
        taken = {existing.id for existing in conversation.messages}
        while message.id in taken:
            message = Message.local(conversation.client_id, text,
                                    sent_at=message.timestamp + timedelta(milliseconds=1))
        return message

    def _clear_unread(self, client_id: str) -> None:
        conversation = self.conversations.get(client_id)
        if conversation is not None and conversation.unread:
            self.conversations.put(conversation.with_unread(0))
