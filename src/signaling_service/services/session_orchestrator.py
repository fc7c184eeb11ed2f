"""Client-side session orchestrator.

Drives one negotiation state machine per ``join_room`` call and owns the
session-scoped state of the local participant (chat log, reaction feed,
status flags) through an explicit :class:`SessionContext`.

Every continuation that resumes after an ``await`` re-checks that its join
generation and peer connection are still current: ``leave_room`` and a
departing peer both invalidate in-flight negotiation work.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Coroutine

from pydantic import ValidationError as PydanticValidationError

from signaling_service.application.exceptions import (
    MediaAcquisitionError,
    SessionStateError,
    SignalApplicationError,
    TransportError,
)
from signaling_service.application.ports.clock import Clock, SystemClock
from signaling_service.application.ports.media import LocalMedia
from signaling_service.application.ports.peer import PeerConnection, PeerConnectionFactory
from signaling_service.application.ports.transport import SignalingTransport, TransportFactory
from signaling_service.application.session.context import SessionContext
from signaling_service.application.session.reaction_feed import ReactionFeed
from signaling_service.config import client_settings
from signaling_service.domain.entities.chat_message import ChatMessage
from signaling_service.domain.entities.reaction import ReactionEvent
from signaling_service.domain.entities.signal_envelope import SignalEnvelope
from signaling_service.domain.value_objects.enums import (
    NegotiationState,
    PeerConnectionState,
    ReactionEmoji,
    RelayEvent,
    SignalType,
)
from signaling_service.infrastructure.ws.payloads import (
    RoomUsersPayload,
    chat_message_from_wire,
    chat_message_to_wire,
    reaction_from_wire,
    reaction_to_wire,
    signal_from_wire,
    signal_to_wire,
)

logger = logging.getLogger(__name__)

Listener = Callable[[SessionContext], None]

_JOINABLE = frozenset({NegotiationState.IDLE, NegotiationState.CLOSED})
_ACCEPTS_OFFER = frozenset({
    NegotiationState.AWAITING_ROOM,
    NegotiationState.OFFERING,
    NegotiationState.CONNECTED,
    NegotiationState.RECONNECTING,
    NegotiationState.PEER_LEFT,
})
_LIVE = frozenset({NegotiationState.CONNECTED, NegotiationState.RECONNECTING})


class SessionOrchestrator:
    def __init__(
        self,
        media: LocalMedia,
        transport_factory: TransportFactory,
        peer_factory: PeerConnectionFactory,
        *,
        clock: Clock | None = None,
        offer_delay: float | None = None,
        reaction_ttl: float | None = None,
    ) -> None:
        self._media = media
        self._transport_factory = transport_factory
        self._peer_factory = peer_factory
        self._clock = clock or SystemClock()
        self._offer_delay = (
            client_settings.OFFER_DELAY_SECONDS if offer_delay is None else offer_delay
        )
        self._reaction_ttl = (
            client_settings.REACTION_TTL_SECONDS if reaction_ttl is None else reaction_ttl
        )
        self._listeners: list[Listener] = []
        self._generation = 0
        self._transport: SignalingTransport | None = None
        self._peer: PeerConnection | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._ctx = self._new_context()

    # -- public surface ---------------------------------------------------

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def state(self) -> NegotiationState:
        return self._ctx.state

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    async def join_room(self, room_id: str) -> None:
        """Acquire media, open the relay channel and request membership.

        Raises MediaAcquisitionError or TransportError; in both cases
        nothing stays open and the state is CLOSED.
        """
        if self._ctx.state not in _JOINABLE:
            raise SessionStateError(f"cannot join while {self._ctx.state}")

        self._generation += 1
        generation = self._generation
        self._ctx = self._new_context()
        self._ctx.room_id = room_id
        self._set_state(NegotiationState.ACQUIRING_MEDIA)

        try:
            tracks = await self._media.acquire()
        except MediaAcquisitionError:
            self._abort_join(generation)
            raise
        except Exception as exc:
            self._abort_join(generation)
            raise MediaAcquisitionError(str(exc)) from exc

        if generation != self._generation:
            for track in tracks:
                track.stop()
            return

        self._ctx.local_tracks = list(tracks)
        self._set_state(NegotiationState.AWAITING_ROOM)

        transport = self._transport_factory()
        self._bind_transport(transport, generation)
        self._transport = transport
        try:
            session_id = await transport.connect()
        except TransportError:
            if generation != self._generation:
                return
            await self._shutdown(send_leave=False)
            raise

        if generation != self._generation:
            await transport.close()
            return

        self._ctx.session_id = session_id
        self._ctx.is_in_room = True
        self._ctx.transport_connected = True
        self._peer = self._create_peer(generation)
        logger.info("Session %s joining room %s", session_id, room_id)
        await self._send(RelayEvent.JOIN_ROOM, room_id)
        self._notify()

    async def leave_room(self) -> None:
        """Tear everything down and return to CLOSED. Safe to call twice."""
        if self._ctx.state is NegotiationState.CLOSED:
            return
        logger.info("Leaving room %s", self._ctx.room_id)
        await self._shutdown(send_leave=True)

    async def send_message(self, content: str) -> ChatMessage | None:
        text = content.strip()
        if not text or not self._ctx.is_in_room:
            return None
        message = ChatMessage(
            id=uuid.uuid4().hex,
            content=text,
            sender_id=self._ctx.session_id or "",
            timestamp=self._clock.now_ms(),
        )
        self._ctx.messages.add(message)
        self._notify()
        await self._send(
            RelayEvent.SEND_MESSAGE,
            {"roomId": self._ctx.room_id, "message": chat_message_to_wire(message)},
        )
        return message

    async def send_reaction(self, emoji: str) -> ReactionEvent | None:
        reaction_emoji = ReactionEmoji(emoji)
        if not self._ctx.is_in_room:
            return None
        reaction = ReactionEvent(
            id=uuid.uuid4().hex,
            emoji=reaction_emoji,
            sender_id=self._ctx.session_id or "",
            timestamp=self._clock.now_ms(),
        )
        self._ctx.reactions.add(reaction)
        await self._send(
            RelayEvent.SEND_REACTION,
            {"roomId": self._ctx.room_id, "reaction": reaction_to_wire(reaction)},
        )
        return reaction

    async def toggle_camera(self) -> bool | None:
        track = self._ctx.track("video")
        if track is None:
            logger.warning("No video track to toggle")
            return None
        track.enabled = not track.enabled
        self._ctx.is_video_enabled = track.enabled
        logger.info("Local camera turned %s", "on" if track.enabled else "off")
        self._notify()
        await self._send(
            RelayEvent.CAMERA_STATUS_CHANGE,
            {"roomId": self._ctx.room_id, "isEnabled": self._ctx.is_video_enabled},
        )
        return self._ctx.is_video_enabled

    async def toggle_microphone(self) -> bool | None:
        track = self._ctx.track("audio")
        if track is None:
            logger.warning("No audio track to toggle")
            return None
        track.enabled = not track.enabled
        self._ctx.is_mic_muted = not track.enabled
        logger.info("Local microphone %s", "muted" if self._ctx.is_mic_muted else "unmuted")
        self._notify()
        await self._send(
            RelayEvent.MIC_STATUS_CHANGE,
            {"roomId": self._ctx.room_id, "isMuted": self._ctx.is_mic_muted},
        )
        return self._ctx.is_mic_muted

    # -- lifecycle helpers ------------------------------------------------

    def _new_context(self) -> SessionContext:
        return SessionContext(reactions=ReactionFeed(self._reaction_ttl, self._notify))

    def _abort_join(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._ctx = self._new_context()
        self._set_state(NegotiationState.CLOSED)

    async def _shutdown(self, *, send_leave: bool) -> None:
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        ctx = self._ctx
        ctx.reactions.clear()
        for track in ctx.local_tracks:
            track.stop()

        peer, self._peer = self._peer, None
        if peer is not None:
            await peer.close()

        transport, self._transport = self._transport, None
        if transport is not None:
            if send_leave and ctx.transport_connected and ctx.room_id:
                try:
                    await transport.send(RelayEvent.LEAVE_ROOM, ctx.room_id)
                except TransportError as exc:
                    logger.warning("Could not announce leave: %s", exc.detail)
            await transport.close()

        self._ctx = self._new_context()
        self._set_state(NegotiationState.CLOSED)

    def _set_state(self, state: NegotiationState) -> None:
        if self._ctx.state is state:
            return
        logger.info("Negotiation %s -> %s", self._ctx.state, state)
        self._ctx.state = state
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._ctx)
            except Exception:
                logger.exception("Session listener failed")

    def _is_current(self, generation: int, peer: PeerConnection | None = None) -> bool:
        if generation != self._generation or self._ctx.state is NegotiationState.CLOSED:
            return False
        return peer is None or peer is self._peer

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, event: str, data: Any) -> None:
        if self._transport is None:
            return
        try:
            await self._transport.send(event, data)
        except TransportError as exc:
            logger.warning("Dropped %s: %s", event, exc.detail)
            self._ctx.transport_connected = False
            self._notify()

    # -- transport events -------------------------------------------------

    def _bind_transport(self, transport: SignalingTransport, generation: int) -> None:
        handlers: dict[RelayEvent, Callable[[int, Any], Awaitable[None]]] = {
            RelayEvent.ROOM_USERS: self._on_room_users,
            RelayEvent.USER_JOINED: self._on_user_joined,
            RelayEvent.SIGNAL: self._on_signal,
            RelayEvent.USER_LEFT: self._on_user_left,
            RelayEvent.RECEIVE_MESSAGE: self._on_receive_message,
            RelayEvent.RECEIVE_REACTION: self._on_receive_reaction,
            RelayEvent.REMOTE_CAMERA_STATUS_CHANGE: self._on_remote_camera,
            RelayEvent.REMOTE_MIC_STATUS_CHANGE: self._on_remote_mic,
        }
        for event, handler in handlers.items():
            transport.on(event, self._guarded(generation, event, handler))

        async def _on_disconnect() -> None:
            if not self._is_current(generation):
                return
            logger.warning("Lost connection to the relay")
            self._ctx.transport_connected = False
            self._notify()

        transport.on_disconnect(_on_disconnect)

    def _guarded(
        self,
        generation: int,
        event: str,
        handler: Callable[[int, Any], Awaitable[None]],
    ) -> Callable[[Any], Awaitable[None]]:
        async def _dispatch(data: Any) -> None:
            if not self._is_current(generation):
                logger.debug("Ignoring stale %s", event)
                return
            await handler(generation, data)

        return _dispatch

    def _holds_offer_role(self) -> bool:
        """The session whose id sorts first offers; the other one answers."""
        own, peer = self._ctx.session_id, self._ctx.peer_id
        if own is None or peer is None:
            return True
        return own < peer

    async def _on_room_users(self, generation: int, data: Any) -> None:
        try:
            payload = (
                RoomUsersPayload(count=data) if isinstance(data, int)
                else RoomUsersPayload.model_validate(data)
            )
        except PydanticValidationError:
            logger.warning("Malformed room-users payload: %r", data)
            return
        self._ctx.room_size = payload.count
        logger.info("Room %s has %d users", self._ctx.room_id, payload.count)
        if payload.count <= 1:
            return
        if payload.peers:
            self._ctx.peer_id = payload.peers[0]
        if not self._holds_offer_role():
            logger.info("Waiting for an offer from %s", self._ctx.peer_id)
            return
        self._spawn(self._delayed_offer(generation))

    async def _delayed_offer(self, generation: int) -> None:
        await asyncio.sleep(self._offer_delay)
        if not self._is_current(generation) or self._ctx.state is not NegotiationState.AWAITING_ROOM:
            return
        await self._send_offer(generation)

    async def _on_user_joined(self, generation: int, data: Any) -> None:
        await self._adopt_peer(generation, str(data))
        logger.info("Peer %s joined", self._ctx.peer_id)
        if self._ctx.state is NegotiationState.PEER_LEFT:
            self._set_state(NegotiationState.AWAITING_ROOM)
        self._ensure_peer(generation)
        if self._holds_offer_role():
            await self._send_offer(generation)
        else:
            await self._broadcast_flags()
            self._notify()

    async def _on_user_left(self, generation: int, data: Any) -> None:
        departed = str(data)
        if self._ctx.peer_id is not None and departed != self._ctx.peer_id:
            logger.debug("Ignoring departure of unknown session %s", departed)
            return
        logger.info("Peer %s left the room", departed)
        for task in list(self._tasks):
            task.cancel()
        peer, self._peer = self._peer, None
        self._ctx.reset_remote()
        self._set_state(NegotiationState.PEER_LEFT)
        if peer is not None:
            await peer.close()

    async def _adopt_peer(self, generation: int, peer_id: str) -> None:
        """Bind to ``peer_id``; a different session never inherits the old connection.

        A peer that reconnects under a new id can be announced before the
        relay reports the old socket gone, so the old session is torn down
        here and its late ``user-left`` no longer matches.
        """
        previous = self._ctx.peer_id
        if previous is not None and previous != peer_id and self._peer is not None:
            logger.info("Peer %s replaced by %s", previous, peer_id)
            for task in list(self._tasks):
                task.cancel()
            self._ctx.reset_remote()
            await self._replace_peer(generation)
            self._set_state(NegotiationState.AWAITING_ROOM)
        self._ctx.peer_id = peer_id

    # -- negotiation ------------------------------------------------------

    def _create_peer(self, generation: int) -> PeerConnection:
        peer = self._peer_factory()
        peer.on_ice_candidate(
            lambda candidate: self._spawn(self._emit_candidate(generation, peer, candidate))
        )
        peer.on_track(lambda stream: self._on_remote_track(generation, peer, stream))
        peer.on_connection_state_change(
            lambda state: self._on_connection_state(generation, peer, state)
        )
        peer.on_negotiation_needed(lambda: self._on_negotiation_needed(generation, peer))
        for track in self._ctx.local_tracks:
            peer.add_track(track)
        return peer

    def _ensure_peer(self, generation: int) -> PeerConnection:
        if self._peer is None:
            self._peer = self._create_peer(generation)
        return self._peer

    async def _replace_peer(self, generation: int) -> PeerConnection:
        old, self._peer = self._peer, None
        if old is not None:
            await old.close()
        return self._ensure_peer(generation)

    async def _send_offer(self, generation: int, *, ice_restart: bool = False) -> None:
        peer = self._ensure_peer(generation)
        previous = self._ctx.state
        self._set_state(NegotiationState.OFFERING)
        try:
            offer = await peer.create_offer(ice_restart=ice_restart)
            if not self._is_current(generation, peer):
                return
            await peer.set_local_description(offer)
        except Exception:
            logger.exception("Failed to create offer")
            if self._is_current(generation, peer):
                self._set_state(previous)
                await self._broadcast_flags()
            return
        if not self._is_current(generation, peer):
            return
        await self._emit_signal(SignalType.OFFER, offer)
        logger.info("Offer sent%s", " (ICE restart)" if ice_restart else "")
        await self._broadcast_flags()

    async def _on_signal(self, generation: int, data: Any) -> None:
        try:
            envelope = signal_from_wire(data)
        except PydanticValidationError as exc:
            logger.warning("Dropping malformed signal: %s", exc.errors(include_url=False))
            return
        logger.debug("Signal received: %s from %s", envelope.type, envelope.sender_id)
        try:
            if envelope.type is SignalType.OFFER:
                await self._apply_offer(generation, envelope)
            elif envelope.type is SignalType.ANSWER:
                await self._apply_answer(generation, envelope)
            else:
                await self._apply_candidate(envelope)
        except SignalApplicationError as exc:
            logger.warning("Dropping %s: %s", envelope.type, exc.detail)

    async def _apply_offer(self, generation: int, envelope: SignalEnvelope) -> None:
        if self._ctx.state not in _ACCEPTS_OFFER:
            raise SignalApplicationError(f"offer not expected while {self._ctx.state}")
        if envelope.sender_id:
            await self._adopt_peer(generation, envelope.sender_id)
        state = self._ctx.state
        if state is NegotiationState.OFFERING:
            if self._holds_offer_role():
                raise SignalApplicationError("offer collision, keeping the local offer")
            peer = await self._replace_peer(generation)
        elif state in _LIVE and self._peer is not None and not self._peer.supports_ice_restart:
            # renegotiating a live session is a recovery and needs fresh ICE transports
            peer = await self._replace_peer(generation)
        else:
            peer = self._ensure_peer(generation)
        self._set_state(NegotiationState.ANSWERING)

        try:
            await peer.set_remote_description(envelope.signal)
            if not self._is_current(generation, peer):
                return
            answer = await peer.create_answer()
            if not self._is_current(generation, peer):
                return
            await peer.set_local_description(answer)
        except Exception as exc:
            if self._is_current(generation, peer):
                # a replaced peer has no outstanding offer to go back to
                self._set_state(
                    NegotiationState.AWAITING_ROOM if state is NegotiationState.OFFERING else state
                )
            raise SignalApplicationError(f"could not apply offer: {exc}") from exc
        if not self._is_current(generation, peer):
            return
        await self._emit_signal(SignalType.ANSWER, answer)
        logger.info("Answer sent")
        self._sync_connected(peer)

    async def _apply_answer(self, generation: int, envelope: SignalEnvelope) -> None:
        peer = self._peer
        if (
            peer is None
            or self._ctx.state is not NegotiationState.OFFERING
            or peer.local_description is None
        ):
            raise SignalApplicationError("answer without an outstanding offer")
        try:
            await peer.set_remote_description(envelope.signal)
        except Exception as exc:
            raise SignalApplicationError(f"could not apply answer: {exc}") from exc
        if not self._is_current(generation, peer):
            return
        self._sync_connected(peer)

    async def _apply_candidate(self, envelope: SignalEnvelope) -> None:
        peer = self._peer
        if peer is None:
            raise SignalApplicationError("ICE candidate before a peer connection exists")
        try:
            await peer.add_ice_candidate(envelope.signal)
        except Exception as exc:
            logger.warning("Failed to add ICE candidate: %s", exc)

    def _sync_connected(self, peer: PeerConnection) -> None:
        # renegotiation on a live connection never fires another state change
        if peer.connection_state == PeerConnectionState.CONNECTED:
            self._ctx.is_connected = True
            self._set_state(NegotiationState.CONNECTED)

    async def _emit_signal(self, signal_type: SignalType, signal: Any) -> None:
        envelope = SignalEnvelope(room_id=self._ctx.room_id, type=signal_type, signal=signal)
        await self._send(RelayEvent.SIGNAL, signal_to_wire(envelope))

    async def _emit_candidate(self, generation: int, peer: PeerConnection, candidate: Any) -> None:
        if candidate is None or not self._is_current(generation, peer):
            return
        await self._emit_signal(SignalType.ICE_CANDIDATE, candidate)

    def _on_remote_track(self, generation: int, peer: PeerConnection, stream: Any) -> None:
        if not self._is_current(generation, peer):
            return
        logger.info("Remote stream received")
        self._ctx.remote_stream = stream
        self._notify()

    def _on_connection_state(self, generation: int, peer: PeerConnection, state: str) -> None:
        if not self._is_current(generation, peer):
            return
        logger.info("Connection state changed: %s", state)
        if state == PeerConnectionState.CONNECTED:
            self._ctx.is_connected = True
            self._set_state(NegotiationState.CONNECTED)
            self._notify()
        elif state in (PeerConnectionState.DISCONNECTED, PeerConnectionState.FAILED):
            self._ctx.is_connected = False
            self._set_state(NegotiationState.RECONNECTING)
            self._notify()
            if state != PeerConnectionState.FAILED:
                return
            if peer.supports_ice_restart:
                logger.info("ICE connection failed, attempting to restart")
                peer.restart_ice()
            elif self._holds_offer_role():
                logger.info("ICE connection failed, renegotiating on a new connection")
                self._spawn(self._renegotiate(generation, peer))
        elif state == PeerConnectionState.CLOSED:
            self._ctx.is_connected = False
            self._notify()

    def _on_negotiation_needed(self, generation: int, peer: PeerConnection) -> None:
        if not self._is_current(generation, peer):
            return
        # the initial exchange is driven by room-users / user-joined
        if self._ctx.state not in _LIVE:
            return
        if not self._holds_offer_role():
            return
        self._spawn(self._send_offer(generation, ice_restart=True))

    async def _renegotiate(self, generation: int, failed: PeerConnection) -> None:
        if not self._is_current(generation, failed):
            return
        await self._replace_peer(generation)
        await self._send_offer(generation)

    # -- auxiliary state --------------------------------------------------

    async def _broadcast_flags(self) -> None:
        room_id = self._ctx.room_id
        await self._send(
            RelayEvent.CAMERA_STATUS_CHANGE,
            {"roomId": room_id, "isEnabled": self._ctx.is_video_enabled},
        )
        await self._send(
            RelayEvent.MIC_STATUS_CHANGE,
            {"roomId": room_id, "isMuted": self._ctx.is_mic_muted},
        )

    async def _on_receive_message(self, generation: int, data: Any) -> None:
        try:
            message = chat_message_from_wire(data)
        except PydanticValidationError:
            logger.warning("Dropping malformed chat message: %r", data)
            return
        if self._ctx.messages.add(message):
            self._notify()
        else:
            logger.debug("Message %s already present, skipping", message.id)

    async def _on_receive_reaction(self, generation: int, data: Any) -> None:
        try:
            reaction = reaction_from_wire(data)
        except PydanticValidationError:
            logger.warning("Dropping malformed reaction: %r", data)
            return
        self._ctx.reactions.add(reaction)

    async def _on_remote_camera(self, generation: int, data: Any) -> None:
        try:
            enabled = data["isEnabled"]
        except (KeyError, TypeError):
            logger.warning("Malformed camera status: %r", data)
            return
        self._ctx.is_remote_video_enabled = bool(enabled)
        logger.info("Remote camera turned %s", "on" if enabled else "off")
        self._notify()

    async def _on_remote_mic(self, generation: int, data: Any) -> None:
        try:
            muted = data["isMuted"]
        except (KeyError, TypeError):
            logger.warning("Malformed mic status: %r", data)
            return
        self._ctx.is_remote_mic_muted = bool(muted)
        logger.info("Remote microphone %s", "muted" if muted else "unmuted")
        self._notify()
