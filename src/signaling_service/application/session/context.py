from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from signaling_service.application.ports.media import LocalTrack
from signaling_service.application.session.chat_log import ChatLog
from signaling_service.application.session.reaction_feed import ReactionFeed
from signaling_service.domain.value_objects.enums import NegotiationState


@dataclass
class SessionContext:
    """All session-scoped state of one local participant.

    Passed explicitly to presentation listeners; reset to defaults on
    every join and on leave.
    """

    reactions: ReactionFeed
    state: NegotiationState = NegotiationState.IDLE
    room_id: str = ""
    session_id: str | None = None
    peer_id: str | None = None
    room_size: int = 0
    is_in_room: bool = False
    is_connected: bool = False
    transport_connected: bool = False
    local_tracks: list[LocalTrack] = field(default_factory=list)
    remote_stream: Any = None
    messages: ChatLog = field(default_factory=ChatLog)
    is_video_enabled: bool = True
    is_mic_muted: bool = False
    is_remote_video_enabled: bool = True
    is_remote_mic_muted: bool = False

    @property
    def peer_left(self) -> bool:
        return self.state is NegotiationState.PEER_LEFT

    def track(self, kind: str) -> LocalTrack | None:
        for t in self.local_tracks:
            if t.kind == kind:
                return t
        return None

    def reset_remote(self) -> None:
        """Forget the peer; the flag mirror goes back to its optimistic defaults."""
        self.peer_id = None
        self.remote_stream = None
        self.is_connected = False
        self.is_remote_video_enabled = True
        self.is_remote_mic_muted = False
