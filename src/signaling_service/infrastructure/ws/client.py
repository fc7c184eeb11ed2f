"""websockets-based client transport to the relay."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import websockets
from pydantic import ValidationError as PydanticValidationError
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from signaling_service.application.exceptions import TransportError
from signaling_service.application.ports.transport import DisconnectHandler, EventHandler
from signaling_service.domain.value_objects.enums import RelayEvent
from signaling_service.infrastructure.ws.payloads import SessionPayload
from signaling_service.infrastructure.ws.protocol import WsInbound, WsOutbound

logger = logging.getLogger(__name__)


class WebSocketSignalingTransport:
    """Implements application.ports.transport.SignalingTransport."""

    def __init__(self, url: str, *, open_timeout: float = 10.0) -> None:
        self._url = url
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._handlers: dict[str, EventHandler] = {}
        self._on_disconnect: DisconnectHandler | None = None
        self._reader: asyncio.Task[None] | None = None
        self._closing = False

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event] = handler

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        self._on_disconnect = handler

    async def connect(self) -> str:
        try:
            self._ws = await websockets.connect(self._url, open_timeout=self._open_timeout)
            greeting = WsOutbound.model_validate_json(await self._ws.recv())
            if greeting.type != RelayEvent.SESSION:
                raise TransportError(f"unexpected greeting {greeting.type!r}")
            session_id = SessionPayload.model_validate(greeting.data).session_id
        except (OSError, TimeoutError, WebSocketException, PydanticValidationError) as exc:
            await self.close()
            raise TransportError(f"cannot reach relay at {self._url}: {exc}") from exc
        except TransportError:
            await self.close()
            raise

        logger.info("Connected to %s as %s", self._url, session_id)
        self._reader = asyncio.create_task(
            self._read_loop(self._ws), name=f"signal-reader-{session_id}",
        )
        return session_id

    async def send(self, event: str, data: Any) -> None:
        if self._ws is None:
            raise TransportError("not connected")
        try:
            await self._ws.send(WsInbound(type=event, data=data).model_dump_json())
        except ConnectionClosed as exc:
            raise TransportError(f"connection closed: {exc}") from exc

    async def close(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    msg = WsOutbound.model_validate_json(raw)
                except PydanticValidationError:
                    logger.warning("Ignoring unparseable frame")
                    continue
                if msg.type == RelayEvent.ERROR:
                    logger.warning("Relay reported an error: %s", msg.data)
                    continue
                handler = self._handlers.get(msg.type)
                if handler is None:
                    logger.debug("No handler for %s", msg.type)
                    continue
                try:
                    await handler(msg.data)
                except Exception:
                    logger.exception("Handler for %s failed", msg.type)
        except ConnectionClosed:
            pass
        finally:
            if not self._closing and self._on_disconnect is not None:
                logger.warning("Relay connection lost")
                await self._on_disconnect()
