from __future__ import annotations

import asyncio

import pytest

from signaling_service.application.session.reaction_feed import ReactionFeed
from tests.conftest import make_reaction


@pytest.mark.asyncio
async def test_reaction_expires_after_ttl():
    changes: list[int] = []
    feed = ReactionFeed(0.02, lambda: changes.append(len(feed)))

    feed.add(make_reaction(reaction_id="r1"))
    assert "r1" in feed

    await asyncio.sleep(0.06)

    assert len(feed) == 0
    assert feed.pending_timers == 0
    assert changes == [1, 0]


@pytest.mark.asyncio
async def test_each_reaction_has_its_own_timer():
    feed = ReactionFeed(0.1)

    feed.add(make_reaction(reaction_id="r1"))
    await asyncio.sleep(0.06)
    feed.add(make_reaction(reaction_id="r2"))
    await asyncio.sleep(0.06)

    assert [r.id for r in feed.items] == ["r2"]

    await asyncio.sleep(0.1)
    assert len(feed) == 0


@pytest.mark.asyncio
async def test_duplicate_id_does_not_rearm():
    feed = ReactionFeed(0.02)

    assert feed.add(make_reaction(reaction_id="r1")) is True
    assert feed.add(make_reaction(reaction_id="r1")) is False
    assert len(feed) == 1
    assert feed.pending_timers == 1

    await asyncio.sleep(0.06)

    assert feed.add(make_reaction(reaction_id="r1")) is False
    assert len(feed) == 0
    assert feed.pending_timers == 0


@pytest.mark.asyncio
async def test_clear_cancels_pending_timers():
    changes: list[int] = []
    feed = ReactionFeed(0.02, lambda: changes.append(len(feed)))
    feed.add(make_reaction(reaction_id="r1"))
    feed.add(make_reaction(reaction_id="r2"))

    feed.clear()
    await asyncio.sleep(0.05)

    assert len(feed) == 0
    assert feed.pending_timers == 0
    # no expiry callback fired after clear
    assert changes == [1, 2]
