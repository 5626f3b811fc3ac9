"""Transport capability used by the engine, plus an in-process implementation."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from agent_sync.core.exceptions import TransportError

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]
Responder = Callable[[Any], Any]


class Transport(ABC):
    """
    Bidirectional named-event channel.

    Reconnection, encoding and delivery guarantees belong to the
    implementation; the engine only emits, calls and subscribes.
    """

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def emit(self, event: str, data: Any = None) -> None:
        """Send ``event`` without waiting for any acknowledgment."""

    @abstractmethod
    async def call(self, event: str, data: Any, timeout: float) -> Any:
        """
        Send ``event`` and wait for the peer's acknowledgment payload.

        Raises:
            asyncio.TimeoutError: If no acknowledgment arrives within ``timeout`` seconds
            TransportError: If the transport is not connected or the connection drops
        """

    @abstractmethod
    def on(self, event: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` to ``event``, replacing any previous handler."""

    @abstractmethod
    def off(self, event: str) -> None:
        ...


class InMemoryTransport(Transport):
    """
    Loopback transport for tests and local runs.

    Records every emission in ``emitted``. Acknowledgments come from
    responders registered with ``respond``; a call without a responder is
    never acknowledged and times out. Server pushes are simulated with
    ``deliver``.
    """

    def __init__(self, connected: bool = False):
        self.emitted: List[Tuple[str, Any]] = []
        self._handlers: Dict[str, EventHandler] = {}
        self._responders: Dict[str, Responder] = {}
        self._connected = connected

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise TransportError("Transport is not connected")

    async def emit(self, event: str, data: Any = None) -> None:
        self._ensure_connected()
        self.emitted.append((event, data))

    async def call(self, event: str, data: Any, timeout: float) -> Any:
        self._ensure_connected()
        self.emitted.append((event, data))

        responder = self._responders.get(event)
        if responder is None:
            never = asyncio.get_running_loop().create_future()
            return await asyncio.wait_for(never, timeout)

        result = responder(data)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout)
        return result

    def respond(self, event: str, responder: Optional[Responder]) -> None:
        """Register the acknowledgment producer for ``event``; None removes it."""
        if responder is None:
            self._responders.pop(event, None)
        else:
            self._responders[event] = responder

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event] = handler

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def handler_for(self, event: str) -> Optional[EventHandler]:
        return self._handlers.get(event)

    async def deliver(self, event: str, payload: Any = None) -> bool:
        """Push ``event`` to its subscriber. Returns False if nobody is subscribed."""
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"No handler for {event}, dropping")
            return False
        await handler(payload)
        return True

    def emitted_events(self, event: str) -> List[Any]:
        """Payloads of every emission of ``event``, oldest first."""
        return [data for name, data in self.emitted if name == event]
