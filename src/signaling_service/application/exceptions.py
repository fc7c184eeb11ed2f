from __future__ import annotations


class SignalingError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(SignalingError):
    """Inbound frame is missing a field the relay needs to route it."""


class UnknownEventError(SignalingError):
    pass


class SessionStateError(SignalingError):
    pass


class MediaAcquisitionError(SignalingError):
    """Camera/microphone permission denied or device unavailable."""


class SignalApplicationError(SignalingError):
    """Malformed or out-of-order negotiation payload."""


class TransportError(SignalingError):
    """Relay unreachable or connection lost."""
