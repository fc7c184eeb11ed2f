"""Camel-cased wire payloads and their mapping to domain entities."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from signaling_service.domain.entities.chat_message import ChatMessage
from signaling_service.domain.entities.reaction import ReactionEvent
from signaling_service.domain.entities.signal_envelope import SignalEnvelope
from signaling_service.domain.value_objects.enums import ReactionEmoji, SignalType


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionPayload(_CamelModel):
    session_id: str


class RoomUsersPayload(_CamelModel):
    count: int
    peers: list[str] = []


class SignalPayload(_CamelModel):
    room_id: str = ""
    type: SignalType
    signal: Any = None
    sender: str | None = Field(default=None, alias="from")


class ChatMessagePayload(_CamelModel):
    id: str
    content: str
    sender_id: str = ""
    timestamp: int

    @field_validator("content")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content must not be blank")
        return v


class ReactionPayload(_CamelModel):
    id: str
    emoji: ReactionEmoji
    sender_id: str = ""
    timestamp: int


def signal_from_wire(data: Any) -> SignalEnvelope:
    p = SignalPayload.model_validate(data)
    return SignalEnvelope(room_id=p.room_id, type=p.type, signal=p.signal, sender_id=p.sender)


def signal_to_wire(envelope: SignalEnvelope) -> dict[str, Any]:
    return {
        "roomId": envelope.room_id,
        "signal": envelope.signal,
        "type": envelope.type.value,
    }


def chat_message_from_wire(data: Any) -> ChatMessage:
    p = ChatMessagePayload.model_validate(data)
    return ChatMessage(id=p.id, content=p.content, sender_id=p.sender_id, timestamp=p.timestamp)


def chat_message_to_wire(message: ChatMessage) -> dict[str, Any]:
    return ChatMessagePayload(
        id=message.id,
        content=message.content,
        sender_id=message.sender_id,
        timestamp=message.timestamp,
    ).model_dump(by_alias=True)


def reaction_from_wire(data: Any) -> ReactionEvent:
    p = ReactionPayload.model_validate(data)
    return ReactionEvent(id=p.id, emoji=p.emoji, sender_id=p.sender_id, timestamp=p.timestamp)


def reaction_to_wire(reaction: ReactionEvent) -> dict[str, Any]:
    return ReactionPayload(
        id=reaction.id,
        emoji=reaction.emoji,
        sender_id=reaction.sender_id,
        timestamp=reaction.timestamp,
    ).model_dump(by_alias=True, mode="json")
