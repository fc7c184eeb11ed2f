from __future__ import annotations

from typing import Any, Protocol

from signaling_service.domain.value_objects.ids import SessionId


class EventSender(Protocol):
    """Delivers one event to one connected session.

    Fire-and-forget: a session that is gone is skipped silently and the
    caller is never told.
    """

    async def send(self, session_id: SessionId, event: str, data: Any) -> None: ...
