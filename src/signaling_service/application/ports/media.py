from __future__ import annotations

from typing import Protocol


class LocalTrack(Protocol):
    kind: str  # "audio" | "video"
    enabled: bool

    def stop(self) -> None: ...


class LocalMedia(Protocol):
    async def acquire(self) -> list[LocalTrack]:
        """Return capture tracks or raise MediaAcquisitionError."""
        ...
