"""Local capture through aiortc's MediaPlayer (optional ``rtc`` extra)."""
from __future__ import annotations

import logging
from typing import Any

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer

from signaling_service.application.exceptions import MediaAcquisitionError
from signaling_service.application.ports.media import LocalTrack

logger = logging.getLogger(__name__)


class ToggleableTrack(MediaStreamTrack):
    """Wraps a capture track; a disabled track sends zeroed frames."""

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self.kind = source.kind
        self.enabled = True
        self._source = source

    async def recv(self) -> Any:
        frame = await self._source.recv()
        if not self.enabled:
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
        return frame

    def stop(self) -> None:
        super().stop()
        self._source.stop()


class PlayerMedia:
    """Implements application.ports.media.LocalMedia.

    ``source`` is anything ffmpeg opens: a file, or a capture device
    together with ``media_format`` (``v4l2``, ``avfoundation``, ...).
    """

    def __init__(
        self,
        source: str,
        *,
        media_format: str | None = None,
        options: dict[str, str] | None = None,
    ) -> None:
        self._source = source
        self._format = media_format
        self._options = options or {}

    async def acquire(self) -> list[LocalTrack]:
        try:
            player = MediaPlayer(self._source, format=self._format, options=self._options)
        except Exception as exc:
            raise MediaAcquisitionError(f"cannot open {self._source}: {exc}") from exc

        tracks: list[LocalTrack] = [
            ToggleableTrack(t) for t in (player.audio, player.video) if t is not None
        ]
        if not tracks:
            raise MediaAcquisitionError(f"{self._source} has no audio or video")
        logger.info("Acquired %s from %s", ", ".join(t.kind for t in tracks), self._source)
        return tracks
