from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

EventHandler = Callable[[Any], Awaitable[None]]
DisconnectHandler = Callable[[], Awaitable[None]]


class SignalingTransport(Protocol):
    """Client side of the bidirectional relay channel.

    Inbound events are dispatched one at a time, in arrival order.
    """

    async def connect(self) -> str:
        """Open the channel and return the session id assigned by the relay."""
        ...

    async def send(self, event: str, data: Any) -> None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def on_disconnect(self, handler: DisconnectHandler) -> None: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[], SignalingTransport]
