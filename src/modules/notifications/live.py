"""Live WebSocket connections keyed by user."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)


class LiveConnectionHub:
    """Registry of open sockets per user; pushes are best effort."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[user_id].add(websocket)
        logger.info("Live connection opened for user %s", user_id)

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self._connections[user_id]
        logger.info("Live connection closed for user %s", user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    async def push_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> bool:
        """Send ``event`` to every socket of ``user_id``; False when the user is offline."""
        sockets = list(self._connections.get(user_id, ()))
        if not sockets:
            return False

        delivered = False
        for websocket in sockets:
            try:
                await websocket.send_json({"event": event, "data": payload})
                delivered = True
            except (WebSocketDisconnect, RuntimeError):
                await self.disconnect(user_id, websocket)
        return delivered


hub = LiveConnectionHub()
