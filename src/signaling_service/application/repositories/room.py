from __future__ import annotations

import asyncio
from typing import Protocol

from signaling_service.domain.value_objects.ids import RoomId, SessionId


class RoomRepository(Protocol):
    """Room membership: ``room_id -> set of session ids``.

    Mutators are synchronous; callers serialize them per room by holding
    ``lock(room_id)`` across the mutation and the broadcast that follows.
    """

    def lock(self, room_id: RoomId) -> asyncio.Lock: ...

    def add(self, room_id: RoomId, session_id: SessionId) -> bool: ...

    def remove(self, room_id: RoomId, session_id: SessionId) -> bool: ...

    def members(self, room_id: RoomId) -> frozenset[SessionId]: ...

    def rooms_of(self, session_id: SessionId) -> frozenset[RoomId]: ...

    def room_count(self) -> int: ...

    def session_count(self) -> int: ...
