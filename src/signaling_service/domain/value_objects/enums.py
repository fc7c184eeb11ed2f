from __future__ import annotations

from enum import StrEnum


class RelayEvent(StrEnum):
    SESSION = "session"
    JOIN_ROOM = "join-room"
    ROOM_USERS = "room-users"
    USER_JOINED = "user-joined"
    SIGNAL = "signal"
    LEAVE_ROOM = "leave-room"
    USER_LEFT = "user-left"
    SEND_MESSAGE = "send-message"
    RECEIVE_MESSAGE = "receive-message"
    SEND_REACTION = "send-reaction"
    RECEIVE_REACTION = "receive-reaction"
    CAMERA_STATUS_CHANGE = "camera-status-change"
    REMOTE_CAMERA_STATUS_CHANGE = "remote-camera-status-change"
    MIC_STATUS_CHANGE = "mic-status-change"
    REMOTE_MIC_STATUS_CHANGE = "remote-mic-status-change"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


class SignalType(StrEnum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class ReactionEmoji(StrEnum):
    CLAP = "👏"
    THUMBS_UP = "👍"
    HEART = "❤️"
    LAUGH = "😂"
    WOW = "😮"
    PARTY = "🎉"


class NegotiationState(StrEnum):
    IDLE = "idle"
    ACQUIRING_MEDIA = "acquiring_media"
    AWAITING_ROOM = "awaiting_room"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    PEER_LEFT = "peer_left"
    CLOSED = "closed"


class PeerConnectionState(StrEnum):
    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"
