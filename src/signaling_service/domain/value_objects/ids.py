from __future__ import annotations

from typing import NewType

SessionId = NewType("SessionId", str)
RoomId = NewType("RoomId", str)
