from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from signaling_service.domain.value_objects.enums import SignalType


@dataclass(frozen=True, slots=True)
class SignalEnvelope:
    """Negotiation payload as seen by a client.

    ``signal`` is opaque: an SDP description or an ICE candidate, passed
    to the peer connection untouched.
    """

    room_id: str
    type: SignalType
    signal: Any
    sender_id: str | None = None
