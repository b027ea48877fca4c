"""
WebSocket Manager - Handles real-time connections and broadcasts.

Connected clients receive an `invalidate` event naming the list resource
that changed (e.g. "diagrams"), and refetch that list instead of relying on
their cached copy.
"""
from fastapi import WebSocket
from typing import Set
import asyncio
import json
import logging

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Manages WebSocket connections and broadcasts.

    All connected clients receive invalidation events when a category,
    entity, template or diagram changes.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("WebSocket connected. Total connections: %d", len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("WebSocket disconnected. Total connections: %d", len(self._connections))

    async def broadcast(self, message: dict):
        """
        Broadcast a message to all connected clients.

        Clients whose send fails are dropped.
        """
        if not self._connections:
            return

        message_text = json.dumps(message)
        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.debug("Dropping websocket after failed send: %s", e)
                    failed.add(websocket)

            self._connections -= failed

    async def notify_invalidated(self, resource: str):
        """
        Tell all clients that a list resource changed.

        Clients should refetch GET /api/<resource>.
        """
        await self.broadcast({
            "type": "invalidate",
            "resource": resource
        })

    @property
    def connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)
