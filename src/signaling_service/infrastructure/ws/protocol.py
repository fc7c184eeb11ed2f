"""WebSocket frame envelope models, shared by relay and client."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # join-room | signal | leave-room | send-message | ... | ping
    data: Any = None


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # session | room-users | user-joined | signal | user-left | ... | error | pong
    data: Any = None
