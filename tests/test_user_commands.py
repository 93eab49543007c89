"""
CityWatch - User Command Tests
==============================

The /r roll reply texts and cooldown rejections.
"""

from unittest.mock import AsyncMock, MagicMock

import hikari
import pytest

from citywatch.extensions import user as user_commands
from citywatch.extensions.user import respond_to_roll, roll_2d6
from conftest import CHANNEL_ID, USER_ID


def _ctx(user_id=USER_ID, channel_id=CHANNEL_ID):
    ctx = MagicMock()
    ctx.user.id = user_id
    ctx.channel_id = channel_id
    ctx.respond = AsyncMock()
    return ctx


class TestRoll:
    """Tests for the /r command."""

    def test_dice_in_range(self):
        """Test each die is 1-6 and the total is their sum."""
        for _ in range(200):
            d1, d2, total = roll_2d6()
            assert 1 <= d1 <= 6
            assert 1 <= d2 <= 6
            assert total == d1 + d2

    @pytest.mark.asyncio
    async def test_roll_reply_and_event(self, pipeline, event_log, monkeypatch):
        """Test a roll posts the result publicly and logs roll_2d6."""
        monkeypatch.setattr(user_commands, "roll_2d6", lambda: (2, 5, 7))
        ctx = _ctx()

        await respond_to_roll(ctx, pipeline, event_log)

        ctx.respond.assert_awaited_once_with("🎲 2d6: 2 + 5 = **7**")
        assert event_log.events() == ["roll_2d6"]
        assert event_log.records[0].meta == {
            "user_id": USER_ID,
            "channel_id": CHANNEL_ID,
            "d1": 2,
            "d2": 5,
            "total": 7,
        }

    @pytest.mark.asyncio
    async def test_cooldown_reply(self, pipeline, event_log, clock):
        """Test a second roll is rejected privately with the rounded-up wait."""
        await respond_to_roll(_ctx(), pipeline, event_log)
        clock.advance(1_500)
        ctx = _ctx()

        await respond_to_roll(ctx, pipeline, event_log)

        ctx.respond.assert_awaited_once_with(
            "⏳ Slow down! Try again in 2s.", flags=hikari.MessageFlag.EPHEMERAL
        )
        assert event_log.events() == ["roll_2d6"]

    @pytest.mark.asyncio
    async def test_channel_cooldown_applies_to_other_users(self, pipeline, event_log):
        """Test another user in the same channel waits out the channel cooldown."""
        await respond_to_roll(_ctx(), pipeline, event_log)
        ctx = _ctx(user_id=USER_ID + 1)

        await respond_to_roll(ctx, pipeline, event_log)

        ctx.respond.assert_awaited_once_with(
            "⏳ Slow down! Try again in 1s.", flags=hikari.MessageFlag.EPHEMERAL
        )
