"""FastAPI application exposing the synchronized agent state to the presentation layer."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from agent_sync.core.config import Settings, get_settings
from agent_sync.core.exceptions import SendFailure, TransportError, UnknownSelectionTarget
from agent_sync.core.engine import ReconciliationEngine
from agent_sync.core.session import AgentSession
from agent_sync.core.websocket_transport import WebSocketTransport
from agent_sync.models.client import Client

logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    text: str


def _roster_entry(session: AgentSession, client: Client) -> Dict[str, Any]:
    engine = session.engine
    return {
        **client.to_dict(),
        "unread": engine.unread_for(client.id),
        "selected": engine.selection.is_selected(client.id)
    }


def _state(session: AgentSession) -> Dict[str, Any]:
    engine = session.engine
    return {
        "clients": [_roster_entry(session, client) for client in engine.roster_view()],
        "selected": engine.selection.current,
        "selectionStatus": engine.selection.status.value,
        "selectionError": engine.selection.error,
        "version": engine.roster.get_data_version() + engine.conversations.get_data_version()
    }


def configure_logging(level: str) -> None:
    """Configure root logging; the level name is case-insensitive."""
    logging.basicConfig(level=level.upper())


def queue_listener(queue: asyncio.Queue) -> Callable[[Dict[str, Any]], None]:
    """Change listener feeding a bounded queue; records arriving while it is full are dropped."""
    def listener(change: Dict[str, Any]) -> None:
        try:
            queue.put_nowait(change)
        except asyncio.QueueFull:
            logger.warning(f"Event stream queue full, dropping {change['type']} change")

    return listener


def create_app(session: Optional[AgentSession] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API around ``session``.

    Without an explicit session, one is created over a WebSocket transport
    pointed at ``settings.server_url``.
    """
    settings = settings or get_settings()
    if session is None:
        transport = WebSocketTransport(settings.server_url)
        session = AgentSession(transport, ReconciliationEngine(transport, settings))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await session.start()
        except TransportError as e:
            logger.error(f"Agent session failed to start: {str(e)}")
        yield
        await session.stop()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify exact origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def active_session() -> AgentSession:
        if not session.active:
            raise HTTPException(status_code=503, detail="Agent session is not active")
        return session

    @app.get("/")
    async def root():
        """Root endpoint returning API information."""
        return {
            "message": settings.app_name,
            "version": settings.app_version,
            "endpoints": {
                "state": "/state",
                "conversation": "/conversations/{client_id}",
                "select": "/select/{client_id}",
                "messages": "/messages",
                "events": "/events"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy" if session.active else "degraded",
            "connected": session.transport.connected,
            "connected_clients": len(session.engine.roster)
        }

    @app.get("/state")
    async def get_state():
        return _state(session)

    @app.get("/conversations/{client_id}")
    async def get_conversation(client_id: str):
        """Conversation for a roster client; an absent conversation reads as empty."""
        engine = session.engine
        if client_id not in engine.roster:
            raise HTTPException(status_code=404, detail=f"Unknown client {client_id}")
        conversation = engine.get_conversation(client_id)
        if conversation is None:
            return {"clientId": client_id, "messages": [], "unread": 0}
        return conversation.to_dict()

    @app.post("/select/{client_id}")
    async def select_conversation(client_id: str):
        current = active_session()
        try:
            result = await current.select(client_id)
        except UnknownSelectionTarget as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

        body = {
            "selected": current.engine.selection.current,
            "status": current.engine.selection.status.value,
            "retry": not result.ok
        }
        if result.ok:
            body["conversation"] = result.conversation.to_dict()
        else:
            body["error"] = str(result.error)
        return body

    @app.post("/messages")
    async def send_message(request: SendMessageRequest):
        current = active_session()
        try:
            message = await current.send(request.text)
        except SendFailure as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        return {
            "sent": message is not None,
            "message": message.to_dict() if message is not None else None
        }

    @app.get("/events")
    async def events():
        """Stream engine change records as server-sent events."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=settings.events_queue_size)
        unsubscribe = session.engine.subscribe(queue_listener(queue))

        async def event_generator():
            try:
                while True:
                    change = await queue.get()
                    yield {"event": change["type"], "data": json.dumps(change)}
            except asyncio.CancelledError:
                pass
            finally:
                unsubscribe()

        return EventSourceResponse(event_generator())

    return app


configure_logging(get_settings().log_level)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "agent_sync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
