"""Ephemeral reaction feed with one removal timer per reaction."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from signaling_service.domain.entities.reaction import ReactionEvent

logger = logging.getLogger(__name__)


class ReactionFeed:
    def __init__(
        self,
        ttl_seconds: float,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._on_change = on_change
        self._items: list[ReactionEvent] = []
        self._timers: dict[str, asyncio.TimerHandle] = {}
        # ids outlive their expiry; only clear() forgets them
        self._seen: set[str] = set()

    def add(self, reaction: ReactionEvent) -> bool:
        """Insert and arm its removal timer; an id seen before is ignored."""
        if reaction.id in self._seen:
            return False
        loop = asyncio.get_running_loop()
        self._seen.add(reaction.id)
        self._items.append(reaction)
        self._timers[reaction.id] = loop.call_later(self._ttl, self._expire, reaction.id)
        self._changed()
        return True

    def clear(self) -> None:
        """Drop every reaction and cancel the pending timers."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._items.clear()
        self._seen.clear()

    def _expire(self, reaction_id: str) -> None:
        if self._timers.pop(reaction_id, None) is None:
            return
        self._items = [r for r in self._items if r.id != reaction_id]
        logger.debug("Reaction %s expired", reaction_id)
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    @property
    def items(self) -> list[ReactionEvent]:
        return list(self._items)

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def __contains__(self, reaction_id: object) -> bool:
        return any(r.id == reaction_id for r in self._items)

    def __len__(self) -> int:
        return len(self._items)
