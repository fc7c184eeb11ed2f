from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    content: str
    sender_id: str
    timestamp: int  # epoch milliseconds at send time
