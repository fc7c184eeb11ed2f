from __future__ import annotations

import bisect
from operator import attrgetter
from typing import Iterator

from signaling_service.domain.entities.chat_message import ChatMessage

_by_timestamp = attrgetter("timestamp")


class ChatLog:
    """Visible chat log: unique ids, sorted by timestamp ascending.

    Messages with equal timestamps keep their arrival order.
    """

    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []
        self._ids: set[str] = set()

    def add(self, message: ChatMessage) -> bool:
        """Merge a message; returns False when its id is already present."""
        if message.id in self._ids:
            return False
        bisect.insort_right(self._messages, message, key=_by_timestamp)
        self._ids.add(message.id)
        return True

    def clear(self) -> None:
        self._messages.clear()
        self._ids.clear()

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)
