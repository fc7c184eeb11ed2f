from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from signaling_service.application.exceptions import UnknownEventError, ValidationError
from signaling_service.config import settings
from signaling_service.domain.value_objects.enums import RelayEvent
from signaling_service.domain.value_objects.ids import SessionId
from signaling_service.infrastructure.ws.manager import ConnectionManager
from signaling_service.infrastructure.ws.protocol import WsInbound, WsOutbound
from signaling_service.services.relay_service import RelayService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/signal")
async def ws_signal(websocket: WebSocket) -> None:
    manager: ConnectionManager = websocket.app.state.connections
    relay: RelayService = websocket.app.state.relay

    session_id = SessionId(uuid.uuid4().hex)
    await manager.connect(websocket, session_id)
    await manager.send(session_id, RelayEvent.SESSION, {"sessionId": session_id})
    logger.info("Client connected: %s", session_id)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{session_id}",
    )
    try:
        await _read_loop(websocket, session_id, relay)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", session_id)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(session_id)
        await relay.disconnect(session_id)
        logger.info("Client disconnected: %s", session_id)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(WsOutbound(type=RelayEvent.PONG, data={}).model_dump_json())
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, session_id: str, relay: RelayService) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await _send_error(ws, {"code": "invalid_payload"})
            continue

        try:
            await relay.handle(session_id, msg.type, msg.data)
        except ValidationError as exc:
            await _send_error(ws, {"code": "invalid_data", "type": msg.type, "detail": exc.detail})
        except UnknownEventError:
            await _send_error(ws, {"code": "unknown_type", "type": msg.type})


async def _send_error(ws: WebSocket, data: dict[str, str]) -> None:
    await ws.send_text(WsOutbound(type=RelayEvent.ERROR, data=data).model_dump_json())
