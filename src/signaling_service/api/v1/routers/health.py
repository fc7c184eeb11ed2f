from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_204_NO_CONTENT)
async def health() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/readyz")
async def readyz(request: Request) -> dict[str, int | str]:
    relay = request.app.state.relay
    return {
        "status": "ready",
        "rooms": relay.rooms.room_count(),
        "sessions": len(request.app.state.connections),
    }
