"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import pytest
import pytest_asyncio

from signaling_service.application.exceptions import MediaAcquisitionError, TransportError
from signaling_service.domain.entities.chat_message import ChatMessage
from signaling_service.domain.entities.reaction import ReactionEvent
from signaling_service.domain.value_objects.enums import ReactionEmoji
from signaling_service.services.relay_service import RelayService
from signaling_service.services.session_orchestrator import SessionOrchestrator


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks and queued deliveries run."""
    for _ in range(rounds):
        await asyncio.sleep(0.005)


def make_chat_message(
    *,
    message_id: str | None = None,
    content: str = "hello",
    sender_id: str = "b",
    timestamp: int = 1_000,
) -> ChatMessage:
    return ChatMessage(
        id=message_id or uuid.uuid4().hex,
        content=content,
        sender_id=sender_id,
        timestamp=timestamp,
    )


def make_reaction(
    *,
    reaction_id: str | None = None,
    emoji: ReactionEmoji = ReactionEmoji.THUMBS_UP,
    sender_id: str = "b",
    timestamp: int = 1_000,
) -> ReactionEvent:
    return ReactionEvent(
        id=reaction_id or uuid.uuid4().hex,
        emoji=emoji,
        sender_id=sender_id,
        timestamp=timestamp,
    )


@dataclass
class FakeClock:
    now: int = 1_000

    def now_ms(self) -> int:
        self.now += 1
        return self.now


@dataclass
class FakeTrack:
    kind: str
    enabled: bool = True
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True


@dataclass
class FakeMedia:
    fail: bool = False
    tracks: list[FakeTrack] = field(default_factory=list)
    calls: int = 0

    async def acquire(self) -> list[FakeTrack]:
        self.calls += 1
        if self.fail:
            raise MediaAcquisitionError("permission denied")
        self.tracks = [FakeTrack("audio"), FakeTrack("video")]
        return self.tracks


class FakePeerConnection:
    """Records what the orchestrator does; tests fire its events by hand."""

    def __init__(self) -> None:
        self.local_description: dict[str, Any] | None = None
        self.remote_description: dict[str, Any] | None = None
        self.connection_state = "new"
        self.tracks: list[Any] = []
        self.candidates: list[dict[str, Any]] = []
        self.offers_created = 0
        self.answers_created = 0
        self.ice_restarts = 0
        self.closed = False
        self.supports_ice_restart = True
        self.fail_offer = False
        # set to make create_offer wait until released
        self.offer_gate: asyncio.Event | None = None
        self._ice_cb: Callable[[Any], None] = lambda _c: None
        self._track_cb: Callable[[Any], None] = lambda _s: None
        self._state_cb: Callable[[str], None] = lambda _s: None
        self._negotiation_cb: Callable[[], None] = lambda: None

    async def create_offer(self, *, ice_restart: bool = False) -> dict[str, Any]:
        if self.offer_gate is not None:
            await self.offer_gate.wait()
        if self.fail_offer:
            raise RuntimeError("offer generation failed")
        self.offers_created += 1
        return {"type": "offer", "sdp": f"offer-{self.offers_created}", "iceRestart": ice_restart}

    async def create_answer(self) -> dict[str, Any]:
        self.answers_created += 1
        return {"type": "answer", "sdp": f"answer-{self.answers_created}"}

    async def set_local_description(self, description: dict[str, Any]) -> None:
        self.local_description = description

    async def set_remote_description(self, description: dict[str, Any]) -> None:
        if not isinstance(description, dict) or "type" not in description:
            raise ValueError("malformed description")
        self.remote_description = description

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None:
        if not isinstance(candidate, dict) or "candidate" not in candidate:
            raise ValueError("malformed candidate")
        self.candidates.append(candidate)

    def restart_ice(self) -> None:
        self.ice_restarts += 1

    def add_track(self, track: Any) -> None:
        self.tracks.append(track)

    async def close(self) -> None:
        self.closed = True
        self.set_connection_state("closed")

    def on_ice_candidate(self, callback: Callable[[Any], None]) -> None:
        self._ice_cb = callback

    def on_track(self, callback: Callable[[Any], None]) -> None:
        self._track_cb = callback

    def on_connection_state_change(self, callback: Callable[[str], None]) -> None:
        self._state_cb = callback

    def on_negotiation_needed(self, callback: Callable[[], None]) -> None:
        self._negotiation_cb = callback

    def set_connection_state(self, state: str) -> None:
        self.connection_state = state
        self._state_cb(state)

    def emit_candidate(self, candidate: dict[str, Any]) -> None:
        self._ice_cb(candidate)

    def emit_track(self, stream: Any) -> None:
        self._track_cb(stream)

    def emit_negotiation_needed(self) -> None:
        self._negotiation_cb()


class FakeTransport:
    """Records outbound events; ``deliver`` plays an inbound one."""

    def __init__(self, session_id: str = "a", *, fail_connect: bool = False) -> None:
        self.session_id = session_id
        self.fail_connect = fail_connect
        self.sent: list[tuple[str, Any]] = []
        self.handlers: dict[str, Callable[[Any], Awaitable[None]]] = {}
        self.disconnect_handler: Callable[[], Awaitable[None]] | None = None
        self.connected = False
        self.closed = False

    async def connect(self) -> str:
        if self.fail_connect:
            raise TransportError("relay unreachable")
        self.connected = True
        return self.session_id

    async def send(self, event: str, data: Any) -> None:
        self.sent.append((event, data))

    def on(self, event: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        self.handlers[event] = handler

    def on_disconnect(self, handler: Callable[[], Awaitable[None]]) -> None:
        self.disconnect_handler = handler

    async def close(self) -> None:
        self.closed = True

    async def deliver(self, event: str, data: Any) -> None:
        await self.handlers[event](data)

    def sent_data(self, event: str) -> list[Any]:
        return [d for e, d in self.sent if e == event]


@dataclass
class RecordingSender:
    """EventSender that records deliveries instead of writing to sockets."""

    sent: list[tuple[str, str, Any]] = field(default_factory=list)

    async def send(self, session_id: str, event: str, data: Any) -> None:
        self.sent.append((session_id, event, data))

    def to(self, session_id: str, event: str | None = None) -> list[Any]:
        return [
            d for s, e, d in self.sent
            if s == session_id and (event is None or e == event)
        ]


class LoopbackHub:
    """EventSender that queues relay output into in-memory client transports."""

    def __init__(self) -> None:
        self.transports: dict[str, LoopbackTransport] = {}
        self.relay: RelayService | None = None

    async def send(self, session_id: str, event: str, data: Any) -> None:
        transport = self.transports.get(session_id)
        if transport is not None:
            transport.inbox.put_nowait((event, data))


class LoopbackTransport:
    """Client transport wired straight into a RelayService, with a real inbox queue."""

    def __init__(self, hub: LoopbackHub, session_id: str) -> None:
        self.hub = hub
        self.session_id = session_id
        self.inbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self.handlers: dict[str, Callable[[Any], Awaitable[None]]] = {}
        self.disconnect_handler: Callable[[], Awaitable[None]] | None = None
        self.sent: list[tuple[str, Any]] = []
        self._pump: asyncio.Task[None] | None = None

    async def connect(self) -> str:
        self.hub.transports[self.session_id] = self
        self._pump = asyncio.create_task(self._run())
        return self.session_id

    async def send(self, event: str, data: Any) -> None:
        assert self.hub.relay is not None
        self.sent.append((event, data))
        await self.hub.relay.handle(self.session_id, event, data)

    def on(self, event: str, handler: Callable[[Any], Awaitable[None]]) -> None:
        self.handlers[event] = handler

    def on_disconnect(self, handler: Callable[[], Awaitable[None]]) -> None:
        self.disconnect_handler = handler

    async def close(self) -> None:
        self.hub.transports.pop(self.session_id, None)
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
        await self.hub.relay.disconnect(self.session_id)

    async def drop(self) -> None:
        """Abrupt loss: the relay notices, the client never says goodbye."""
        self.hub.transports.pop(self.session_id, None)
        if self._pump is not None:
            self._pump.cancel()
        await self.hub.relay.disconnect(self.session_id)

    async def _run(self) -> None:
        while True:
            event, data = await self.inbox.get()
            handler = self.handlers.get(event)
            if handler is not None:
                await handler(data)


@dataclass
class Harness:
    orchestrator: SessionOrchestrator
    media: FakeMedia
    transport: FakeTransport
    peers: list[FakePeerConnection]

    @property
    def peer(self) -> FakePeerConnection:
        return self.peers[-1]


def make_harness(
    *,
    session_id: str = "a",
    media: FakeMedia | None = None,
    transport: FakeTransport | None = None,
    ice_restart: bool = True,
) -> Harness:
    media = media or FakeMedia()
    transport = transport or FakeTransport(session_id)
    peers: list[FakePeerConnection] = []

    def _peer_factory() -> FakePeerConnection:
        pc = FakePeerConnection()
        pc.supports_ice_restart = ice_restart
        peers.append(pc)
        return pc

    orchestrator = SessionOrchestrator(
        media,
        lambda: transport,
        _peer_factory,
        clock=FakeClock(),
        offer_delay=0,
        reaction_ttl=0.05,
    )
    return Harness(orchestrator, media, transport, peers)


@pytest.fixture
def harness() -> Harness:
    return make_harness()


@pytest_asyncio.fixture
async def joined(harness: Harness) -> Harness:
    await harness.orchestrator.join_room("R1")
    return harness
