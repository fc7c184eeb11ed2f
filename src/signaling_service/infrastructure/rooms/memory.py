"""In-process room registry."""
from __future__ import annotations

import asyncio
import weakref


class InMemoryRoomRegistry:
    """Implements application.repositories.room.RoomRepository.

    Rooms exist only while they have members. Locks are held weakly so a
    room's lock lives exactly as long as someone is using or waiting on it.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[str]] = {}
        self._session_rooms: dict[str, set[str]] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_id] = lock
        return lock

    def add(self, room_id: str, session_id: str) -> bool:
        members = self._rooms.setdefault(room_id, set())
        if session_id in members:
            return False
        members.add(session_id)
        self._session_rooms.setdefault(session_id, set()).add(room_id)
        return True

    def remove(self, room_id: str, session_id: str) -> bool:
        members = self._rooms.get(room_id)
        if not members or session_id not in members:
            return False
        members.discard(session_id)
        if not members:
            del self._rooms[room_id]
        rooms = self._session_rooms.get(session_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._session_rooms[session_id]
        return True

    def members(self, room_id: str) -> frozenset[str]:
        return frozenset(self._rooms.get(room_id, ()))

    def rooms_of(self, session_id: str) -> frozenset[str]:
        return frozenset(self._session_rooms.get(session_id, ()))

    def room_count(self) -> int:
        return len(self._rooms)

    def session_count(self) -> int:
        return len(self._session_rooms)
