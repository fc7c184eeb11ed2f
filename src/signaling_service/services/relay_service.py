"""Room membership and opaque fan-out between the sessions of a room."""
from __future__ import annotations

import logging
from typing import Any

from signaling_service.application.exceptions import UnknownEventError, ValidationError
from signaling_service.application.ports.sender import EventSender
from signaling_service.application.repositories.room import RoomRepository
from signaling_service.domain.value_objects.enums import RelayEvent

logger = logging.getLogger(__name__)

# inbound event -> (outbound event, forwarded key, keep the key as a wrapper)
_FORWARDED: dict[str, tuple[RelayEvent, str, bool]] = {
    RelayEvent.SEND_MESSAGE: (RelayEvent.RECEIVE_MESSAGE, "message", False),
    RelayEvent.SEND_REACTION: (RelayEvent.RECEIVE_REACTION, "reaction", False),
    RelayEvent.CAMERA_STATUS_CHANGE: (RelayEvent.REMOTE_CAMERA_STATUS_CHANGE, "isEnabled", True),
    RelayEvent.MIC_STATUS_CHANGE: (RelayEvent.REMOTE_MIC_STATUS_CHANGE, "isMuted", True),
}


class RelayService:
    def __init__(self, rooms: RoomRepository, sender: EventSender) -> None:
        self._rooms = rooms
        self._sender = sender

    @property
    def rooms(self) -> RoomRepository:
        return self._rooms

    async def join(self, session_id: str, room_id: str) -> int:
        """Add the session, then reply with the member count (self included).

        Every other member is told about the newcomer. Re-joining a room
        the session is already in only repeats the count.
        """
        async with self._rooms.lock(room_id):
            added = self._rooms.add(room_id, session_id)
            members = self._rooms.members(room_id)
            others = sorted(members - {session_id})
            await self._sender.send(
                session_id,
                RelayEvent.ROOM_USERS,
                {"count": len(members), "peers": others},
            )
            if added:
                for other in others:
                    await self._sender.send(other, RelayEvent.USER_JOINED, session_id)
        logger.info("Session %s joined room %s (members=%d)", session_id, room_id, len(members))
        return len(members)

    async def relay(self, session_id: str, room_id: str, event: str, data: Any) -> int:
        """Forward ``data`` to every member of the room except the sender."""
        async with self._rooms.lock(room_id):
            targets = self._rooms.members(room_id) - {session_id}
            for target in targets:
                await self._sender.send(target, event, data)
        return len(targets)

    async def relay_signal(self, session_id: str, room_id: str, envelope: dict[str, Any]) -> int:
        forwarded = {**envelope, "from": session_id}
        count = await self.relay(session_id, room_id, RelayEvent.SIGNAL, forwarded)
        logger.debug(
            "Signal relay: %s from %s to room %s (%d targets)",
            envelope.get("type"), session_id, room_id, count,
        )
        return count

    async def leave(self, session_id: str, room_id: str) -> None:
        async with self._rooms.lock(room_id):
            if not self._rooms.remove(room_id, session_id):
                return
            for other in self._rooms.members(room_id):
                await self._sender.send(other, RelayEvent.USER_LEFT, session_id)
        logger.info("Session %s left room %s", session_id, room_id)

    async def disconnect(self, session_id: str) -> None:
        """Transport loss: leave every room the session was in."""
        for room_id in self._rooms.rooms_of(session_id):
            await self.leave(session_id, room_id)
        logger.info("Session %s disconnected", session_id)

    async def handle(self, session_id: str, event: str, data: Any) -> None:
        """Route one inbound client frame.

        Payloads are forwarded opaquely; only the room code is required.
        """
        if event == RelayEvent.JOIN_ROOM:
            await self.join(session_id, _room_code(data))

        elif event == RelayEvent.LEAVE_ROOM:
            await self.leave(session_id, _room_code(data))

        elif event == RelayEvent.SIGNAL:
            await self.relay_signal(session_id, _room_code(_mapping(data)), data)

        elif event in _FORWARDED:
            outbound, key, wrapped = _FORWARDED[event]
            room_id = _room_code(_mapping(data))
            body = data.get(key)
            await self.relay(session_id, room_id, outbound, {key: body} if wrapped else body)

        elif event == RelayEvent.PING:
            await self._sender.send(session_id, RelayEvent.PONG, {})

        else:
            raise UnknownEventError(event)


def _mapping(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("payload must be an object")
    return data


def _room_code(data: Any) -> str:
    room_id = data.get("roomId") if isinstance(data, dict) else data
    if not isinstance(room_id, str) or not room_id:
        raise ValidationError("roomId is required")
    return room_id
