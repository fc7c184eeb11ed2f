from __future__ import annotations

from dataclasses import dataclass

from signaling_service.domain.value_objects.enums import ReactionEmoji


@dataclass(frozen=True, slots=True)
class ReactionEvent:
    id: str
    emoji: ReactionEmoji
    sender_id: str
    timestamp: int
