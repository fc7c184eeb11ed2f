"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

from signaling_service.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks one WebSocket per session id; implements application.ports.sender.EventSender."""

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}

    async def connect(self, ws: WebSocket, session_id: str) -> None:
        await ws.accept()
        self._connections[session_id] = ws
        logger.debug("WS connected: %s (total=%d)", session_id, len(self._connections))

    def disconnect(self, session_id: str) -> None:
        if self._connections.pop(session_id, None) is not None:
            logger.debug("WS disconnected: %s", session_id)

    def __len__(self) -> int:
        return len(self._connections)

    async def send(self, session_id: str, event: str, data: Any) -> None:
        ws = self._connections.get(session_id)
        if ws is None:
            logger.debug("Dropping %s for gone session %s", event, session_id)
            return
        raw = WsOutbound(type=event, data=data).model_dump_json()
        try:
            await ws.send_text(raw)
        except Exception:
            logger.debug("Send to %s failed, dropping connection", session_id, exc_info=True)
            self.disconnect(session_id)

    async def close_all(self) -> None:
        for session_id, ws in list(self._connections.items()):
            try:
                await ws.close(code=1001)
            except Exception:
                logger.debug("Close of %s failed", session_id, exc_info=True)
        self._connections.clear()
