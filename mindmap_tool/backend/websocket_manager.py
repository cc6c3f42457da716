"""
WebSocket Manager - Pushes document change events to connected editors.

Every committed change to the runtime (action, undo/redo, import) is
announced as a `document_updated` event carrying the root id and the
history counters, so clients can refresh their undo/redo buttons without a
round trip and fetch the document itself via GET /api/document.
"""
import asyncio
from typing import Literal, Optional

from fastapi import WebSocket
from loguru import logger
from pydantic import BaseModel

from .runtime import CommandRuntime


class DocumentUpdatedEvent(BaseModel):
    """Event broadcast after each committed document change."""
    type: Literal["document_updated"] = "document_updated"
    root_id: str
    history_index: int
    can_undo: bool
    can_redo: bool

    @classmethod
    def from_runtime(cls, runtime: CommandRuntime) -> "DocumentUpdatedEvent":
        return cls(
            root_id=runtime.get_state().id,
            history_index=runtime.history_index,
            can_undo=runtime.can_undo,
            can_redo=runtime.can_redo,
        )


class WebSocketManager:
    """Registry of editor connections and fan-out of change events."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self.last_event: Optional[DocumentUpdatedEvent] = None

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket):
        """Accept a client and register it for change events."""
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info("Editor connected ({} open)", self.connection_count)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("Editor disconnected ({} open)", self.connection_count)

    async def send_event(self, event: DocumentUpdatedEvent) -> int:
        """
        Send an event to every client.

        Clients whose send fails are unregistered.

        Returns:
            Number of clients the event reached
        """
        self.last_event = event
        payload = event.model_dump_json()

        async with self._lock:
            clients = list(self._clients)
            results = await asyncio.gather(
                *(client.send_text(payload) for client in clients),
                return_exceptions=True,
            )
            stale = set()
            for client, result in zip(clients, results):
                if isinstance(result, Exception):
                    logger.debug("Dropping editor after failed send: {}", result)
                    stale.add(client)
            self._clients -= stale

        return len(clients) - len(stale)

    async def notify_document_updated(self, runtime: CommandRuntime) -> int:
        """Announce the runtime's current document and history position."""
        return await self.send_event(DocumentUpdatedEvent.from_runtime(runtime))
