"""WebSocket transport speaking a JSON event envelope."""

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from agent_sync.core.exceptions import TransportError
from agent_sync.core.transport import EventHandler, Transport

logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """
    Transport over a single WebSocket connection.

    Every frame is one JSON object. Events are ``{"event", "data"}``; an
    emission expecting an acknowledgment adds an integer ``"ack"`` id, and
    the peer answers with ``{"ack": id, "data": ...}``.
    """

    def __init__(self, url: str):
        self.url = url
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._handlers: Dict[str, EventHandler] = {}
        self._pending: Dict[int, asyncio.Future] = {}
        self._ack_counter = 0

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """
        Open the connection and start routing inbound frames.

        Raises:
            TransportError: If the server cannot be reached or refuses the handshake
        """
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise TransportError(f"Failed to connect to {self.url}: {str(e)}") from e

        self._reader = asyncio.create_task(self._read_loop(self._ws))
        logger.info(f"Connected to {self.url}")

    async def disconnect(self) -> None:
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None

        if reader is not None:
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        if ws is not None:
            await ws.close()
            logger.info(f"Disconnected from {self.url}")
        self._fail_pending(TransportError("Transport disconnected"))

    async def emit(self, event: str, data: Any = None) -> None:
        await self._send({"event": event, "data": data})

    async def call(self, event: str, data: Any, timeout: float) -> Any:
        self._ack_counter += 1
        ack_id = self._ack_counter
        future = asyncio.get_running_loop().create_future()
        self._pending[ack_id] = future

        try:
            await self._send({"event": event, "data": data, "ack": ack_id})
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(ack_id, None)

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event] = handler

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    async def _send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError("Transport is not connected")
        try:
            await self._ws.send(json.dumps(frame))
        except ConnectionClosed as e:
            raise TransportError(f"Connection closed while sending {frame.get('event')}") from e

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning(f"Connection to {self.url} lost: {str(e)}")
        finally:
            if self._ws is ws:
                self._ws = None
            self._fail_pending(TransportError("Connection closed"))

    async def _handle_frame(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Dropping undecodable frame from {self.url}")
            return
        if not isinstance(frame, dict):
            logger.warning(f"Dropping non-object frame from {self.url}")
            return

        if "event" not in frame and "ack" in frame:
            future = self._pending.get(frame["ack"])
            if future is None or future.done():
                logger.debug(f"Ignoring late acknowledgment {frame['ack']!r}")
                return
            future.set_result(frame.get("data"))
            return

        event = frame.get("event")
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"No handler for {event!r}, dropping")
            return
        try:
            await handler(frame.get("data"))
        except Exception:
            logger.exception(f"Handler for {event!r} failed")

    def _fail_pending(self, error: TransportError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
