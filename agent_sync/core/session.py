"""Agent session: binds the engine to a transport for one operator session."""

import logging
from typing import Any, Optional

from agent_sync.core.engine import FetchResult, ReconciliationEngine
from agent_sync.core.exceptions import SyncError
from agent_sync.core.transport import EventHandler, Transport
from agent_sync.models.event import INBOUND_EVENTS, EventType
from agent_sync.models.message import Message

logger = logging.getLogger(__name__)


class AgentSession:
    """Manages the transport lifecycle and routes inbound events into the engine."""

    def __init__(self, transport: Transport, engine: Optional[ReconciliationEngine] = None):
        self.transport = transport
        self.engine = engine or ReconciliationEngine(transport)
        self._started = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> None:
        """
        Connect, subscribe the inbound handlers and register as an agent.

        Raises:
            SyncError: If the session was already stopped
            TransportError: If the transport cannot connect
        """
        if self._closed:
            raise SyncError("A stopped session cannot be restarted")
        if self._started:
            return

        await self.transport.connect()
        for event_type in INBOUND_EVENTS:
            self.transport.on(event_type.value, self._make_handler(event_type.value))
        self._started = True
        await self.transport.emit(EventType.REGISTER_AGENT.value)
        logger.info("Agent session started")

    async def stop(self) -> None:
        """
        Tear the session down.

        The session is marked closed before anything is unsubscribed, so an
        event already in flight is dropped instead of reaching the engine.
        """
        if self._closed:
            return
        self._closed = True
        for event_type in INBOUND_EVENTS:
            self.transport.off(event_type.value)
        if self._started:
            await self.transport.disconnect()
        logger.info("Agent session stopped")

    def _make_handler(self, name: str) -> EventHandler:
        async def handle(payload: Any) -> None:
            if self._closed:
                logger.debug(f"Session closed, dropping {name}")
                return
            self.engine.dispatch(name, payload)

        return handle

    async def select(self, client_id: str) -> FetchResult:
        self._ensure_active()
        return await self.engine.select_conversation(client_id)

    async def send(self, text: str) -> Optional[Message]:
        self._ensure_active()
        return await self.engine.send_message(text)

    def _ensure_active(self) -> None:
        if not self.active:
            raise SyncError("Agent session is not active")
