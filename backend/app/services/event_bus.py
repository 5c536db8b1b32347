from typing import Set
from fastapi import WebSocket
import json
import asyncio
import logging

from app.core.events import AgentEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Fan-out of agent events to connected WebSocket clients."""

    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.connections.add(websocket)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.connections.discard(websocket)

    async def broadcast(self, event: dict):
        """Broadcast event to all connected clients."""
        message = json.dumps(event, default=str)
        disconnected = set()

        for ws in self.connections.copy():
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.add(ws)

        if disconnected:
            logger.debug("Dropping %d closed WebSocket connection(s)", len(disconnected))
            async with self._lock:
                self.connections -= disconnected

    async def publish(self, event: AgentEvent):
        """Agent event callback: broadcast the event as JSON."""
        await self.broadcast(event.model_dump())


# Singleton instance
event_bus = EventBus()
