"""Command-line client: join a room and chat with the other participant.

Lines typed on stdin are sent as chat messages. Commands:
``/react <emoji>``, ``/cam``, ``/mic``, ``/leave``.

Requires the ``rtc`` extra (aiortc).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from aiortc.contrib.media import MediaBlackhole

from signaling_service.application.exceptions import MediaAcquisitionError, TransportError
from signaling_service.application.session.context import SessionContext
from signaling_service.config import client_settings
from signaling_service.infrastructure.rtc.aiortc_media import PlayerMedia
from signaling_service.infrastructure.rtc.aiortc_peer import AiortcPeerConnection
from signaling_service.infrastructure.ws.client import WebSocketSignalingTransport
from signaling_service.services.session_orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)


class _ConsoleView:
    """Prints chat, reactions and peer status as the session context changes."""

    def __init__(self) -> None:
        self._seen_messages: set[str] = set()
        self._seen_reactions: set[str] = set()
        self._state = ""
        self._remote_flags: tuple[bool, bool] | None = None
        self._sink: MediaBlackhole | None = None
        self._sink_task: asyncio.Task[None] | None = None
        self._remote: object = None

    def __call__(self, ctx: SessionContext) -> None:
        if ctx.state != self._state:
            self._state = ctx.state
            print(f"* {ctx.state}")
        for message in ctx.messages:
            if message.id in self._seen_messages:
                continue
            self._seen_messages.add(message.id)
            who = "me" if message.sender_id == ctx.session_id else message.sender_id[:8]
            print(f"<{who}> {message.content}")
        for reaction in ctx.reactions.items:
            if reaction.id not in self._seen_reactions:
                self._seen_reactions.add(reaction.id)
                print(f"  {reaction.emoji}")
        flags = (ctx.is_remote_video_enabled, ctx.is_remote_mic_muted)
        if ctx.peer_id and flags != self._remote_flags:
            self._remote_flags = flags
            print(f"* peer camera {'on' if flags[0] else 'off'}, mic {'muted' if flags[1] else 'live'}")
        if ctx.remote_stream is not None and ctx.remote_stream is not self._remote:
            self._remote = ctx.remote_stream
            self._consume(ctx.remote_stream)

    def _consume(self, track: object) -> None:
        # remote media has to be read for the connection to keep flowing
        previous = self._sink_task
        self._sink_task = asyncio.get_running_loop().create_task(self._swap_sink(previous, track))

    async def _swap_sink(self, previous: asyncio.Task[None] | None, track: object) -> None:
        if previous is not None:
            await previous
        if self._sink is not None:
            await self._sink.stop()
        self._sink = MediaBlackhole()
        self._sink.addTrack(track)
        await self._sink.start()

    async def close(self) -> None:
        """Stop consuming remote media; surfaces any sink failure."""
        task, self._sink_task = self._sink_task, None
        if task is not None:
            await task
        sink, self._sink = self._sink, None
        if sink is not None:
            await sink.stop()


async def run(args: argparse.Namespace) -> int:
    orchestrator = SessionOrchestrator(
        media=PlayerMedia(args.media, media_format=args.media_format),
        transport_factory=lambda: WebSocketSignalingTransport(args.url),
        peer_factory=lambda: AiortcPeerConnection(client_settings.STUN_SERVERS),
    )
    view = _ConsoleView()
    orchestrator.add_listener(view)

    try:
        await orchestrator.join_room(args.room)
    except (MediaAcquisitionError, TransportError) as exc:
        print(f"Could not join room {args.room}: {exc.detail}", file=sys.stderr)
        return 1

    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line or line.strip() == "/leave":
                break
            text = line.strip()
            if text == "/cam":
                await orchestrator.toggle_camera()
            elif text == "/mic":
                await orchestrator.toggle_microphone()
            elif text.startswith("/react "):
                try:
                    await orchestrator.send_reaction(text.split(" ", 1)[1].strip())
                except ValueError:
                    print("Unknown reaction", file=sys.stderr)
            else:
                await orchestrator.send_message(text)
    finally:
        await orchestrator.leave_room()
        await view.close()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Join a two-party call room")
    parser.add_argument("room", help="Room code shared with the other participant")
    parser.add_argument("--url", default=client_settings.URL, help="Relay WebSocket URL")
    parser.add_argument("--media", required=True, help="Media file or capture device")
    parser.add_argument("--media-format", default=None, help="ffmpeg input format for devices")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
