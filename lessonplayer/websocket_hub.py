from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class PlayerWebSocketHub:
    """Websocket watchers of hosted player sessions.

    Watchers get small JSON notices (`player_updated`, `navigate`) and re-fetch
    `GET /players/{session_id}` for the full view. When a session is retired its
    watchers get a last `session_closed` notice and are forgotten.
    Single process only.
    """

    def __init__(self) -> None:
        self._watchers: dict[str, list[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._watchers.setdefault(session_id, []).append(websocket)

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            watchers = self._watchers.get(session_id, [])
            if websocket in watchers:
                watchers.remove(websocket)
            if not watchers:
                self._watchers.pop(session_id, None)

    def watchers(self, session_id: str) -> int:
        return len(self._watchers.get(session_id, ()))

    async def send(self, session_id: str, message: dict[str, Any]) -> None:
        async with self._lock:
            watchers = list(self._watchers.get(session_id, ()))
        for ws in watchers:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug("Dropping watcher of session %s: %s", session_id, e)
                await self.disconnect(session_id, ws)

    async def close_session(self, session_id: str) -> None:
        async with self._lock:
            watchers = self._watchers.pop(session_id, [])
        for ws in watchers:
            try:
                await ws.send_json({"type": "session_closed", "session_id": session_id})
            except Exception as e:
                logger.debug("Watcher of session %s already gone: %s", session_id, e)


hub = PlayerWebSocketHub()
