from __future__ import annotations

from typing import Any, Callable, Protocol

from signaling_service.application.ports.media import LocalTrack

SessionDescription = dict[str, Any]
IceCandidate = dict[str, Any]


class PeerConnection(Protocol):
    """The media-transport capability the orchestrator drives.

    Descriptions and candidates are opaque dicts that travel through the
    relay unchanged.
    """

    @property
    def local_description(self) -> SessionDescription | None: ...

    @property
    def connection_state(self) -> str: ...

    @property
    def supports_ice_restart(self) -> bool:
        """False when a failed connection can only be recovered by replacing it."""
        ...

    async def create_offer(self, *, ice_restart: bool = False) -> SessionDescription: ...

    async def create_answer(self) -> SessionDescription: ...

    async def set_local_description(self, description: SessionDescription) -> None: ...

    async def set_remote_description(self, description: SessionDescription) -> None: ...

    async def add_ice_candidate(self, candidate: IceCandidate) -> None: ...

    def restart_ice(self) -> None: ...

    def add_track(self, track: LocalTrack) -> None: ...

    async def close(self) -> None: ...

    def on_ice_candidate(self, callback: Callable[[IceCandidate], None]) -> None: ...

    def on_track(self, callback: Callable[[Any], None]) -> None: ...

    def on_connection_state_change(self, callback: Callable[[str], None]) -> None: ...

    def on_negotiation_needed(self, callback: Callable[[], None]) -> None: ...


PeerConnectionFactory = Callable[[], PeerConnection]
