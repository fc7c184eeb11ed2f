"""aiortc-backed peer connection (optional ``rtc`` extra)."""
from __future__ import annotations

import logging
from typing import Any, Callable

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from signaling_service.application.ports.media import LocalTrack
from signaling_service.application.ports.peer import IceCandidate, SessionDescription

logger = logging.getLogger(__name__)


class AiortcPeerConnection:
    """Implements application.ports.peer.PeerConnection.

    aiortc gathers candidates while setting the local description and
    embeds them in the SDP, so ``on_ice_candidate`` never fires. It cannot
    restart ICE on a failed connection either; the orchestrator replaces
    the whole connection instead, so ``on_negotiation_needed`` never fires.
    """

    def __init__(self, ice_servers: list[str]) -> None:
        self._pc = RTCPeerConnection(
            RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])
        )
        self._on_ice_candidate: Callable[[IceCandidate], None] | None = None
        self._on_track: Callable[[Any], None] = lambda _track: None
        self._on_state: Callable[[str], None] = lambda _state: None
        self._on_negotiation_needed: Callable[[], None] = lambda: None

        @self._pc.on("track")
        def _track(track: Any) -> None:
            logger.debug("Remote %s track received", track.kind)
            self._on_track(track)

        @self._pc.on("connectionstatechange")
        async def _state() -> None:
            self._on_state(self._pc.connectionState)

    @property
    def local_description(self) -> SessionDescription | None:
        desc = self._pc.localDescription
        if desc is None:
            return None
        return {"sdp": desc.sdp, "type": desc.type}

    @property
    def connection_state(self) -> str:
        return self._pc.connectionState

    @property
    def supports_ice_restart(self) -> bool:
        return False

    async def create_offer(self, *, ice_restart: bool = False) -> SessionDescription:
        desc = await self._pc.createOffer()
        return {"sdp": desc.sdp, "type": desc.type}

    async def create_answer(self) -> SessionDescription:
        desc = await self._pc.createAnswer()
        return {"sdp": desc.sdp, "type": desc.type}

    async def set_local_description(self, description: SessionDescription) -> None:
        await self._pc.setLocalDescription(_to_rtc(description))

    async def set_remote_description(self, description: SessionDescription) -> None:
        await self._pc.setRemoteDescription(_to_rtc(description))

    async def add_ice_candidate(self, candidate: IceCandidate) -> None:
        line = candidate.get("candidate") or ""
        if not line:
            return
        rtc_candidate = candidate_from_sdp(line.split(":", 1)[1] if line.startswith("candidate:") else line)
        rtc_candidate.sdpMid = candidate.get("sdpMid")
        rtc_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self._pc.addIceCandidate(rtc_candidate)

    def restart_ice(self) -> None:
        raise NotImplementedError("aiortc cannot restart ICE, replace the connection")

    def add_track(self, track: LocalTrack) -> None:
        self._pc.addTrack(track)  # type: ignore[arg-type]

    async def close(self) -> None:
        await self._pc.close()

    def on_ice_candidate(self, callback: Callable[[IceCandidate], None]) -> None:
        self._on_ice_candidate = callback

    def on_track(self, callback: Callable[[Any], None]) -> None:
        self._on_track = callback

    def on_connection_state_change(self, callback: Callable[[str], None]) -> None:
        self._on_state = callback

    def on_negotiation_needed(self, callback: Callable[[], None]) -> None:
        self._on_negotiation_needed = callback


def _to_rtc(description: SessionDescription) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=description["sdp"], type=description["type"])
