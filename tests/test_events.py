"""
CityWatch - Gateway Adapter Tests
=================================

Message flattening and moderator detection on mocked hikari objects.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import hikari
import pytest

from citywatch.core.types import BotConfig
from citywatch.extensions.events import build_inbound_message
from citywatch.utils.errors import PermissionError as CityWatchPermissionError
from citywatch.utils.permissions import has_mod_permission, require_moderator
from conftest import CHANNEL_ID, GUILD_ID, USER_ID

MOD_ROLE_ID = 4000


def _member(role_ids=(), permissions=hikari.Permissions.NONE, owner_id=1):
    member = MagicMock()
    member.id = USER_ID
    member.role_ids = list(role_ids)
    member.get_roles.return_value = [MagicMock(permissions=permissions)]
    member.get_guild.return_value = MagicMock(owner_id=owner_id)
    return member


class TestHasModPermission:
    """Tests for who counts as a moderator."""

    def test_missing_member(self):
        """Test an uncached member is never a moderator."""
        assert has_mod_permission(None, MOD_ROLE_ID) is False

    def test_plain_member(self):
        """Test a member without roles or permissions is not a moderator."""
        assert has_mod_permission(_member(), MOD_ROLE_ID) is False

    def test_moderator_role(self):
        """Test holding the configured moderator role is enough."""
        assert has_mod_permission(_member(role_ids=[MOD_ROLE_ID]), MOD_ROLE_ID) is True

    def test_moderation_permission(self):
        """Test a role granting message management counts."""
        member = _member(permissions=hikari.Permissions.MANAGE_MESSAGES)

        assert has_mod_permission(member, None) is True

    def test_unrelated_permission(self):
        """Test ordinary permissions do not count."""
        member = _member(permissions=hikari.Permissions.SEND_MESSAGES)

        assert has_mod_permission(member, MOD_ROLE_ID) is False

    def test_guild_owner(self):
        """Test the guild owner is always a moderator."""
        assert has_mod_permission(_member(owner_id=USER_ID), MOD_ROLE_ID) is True


class TestBuildInboundMessage:
    """Tests for flattening gateway events."""

    def _event(self, member=None, content="hello", is_bot=False, is_webhook=False):
        event = MagicMock()
        event.author_id = USER_ID
        event.guild_id = GUILD_ID
        event.channel_id = CHANNEL_ID
        event.message_id = 42
        event.content = content
        event.is_bot = is_bot
        event.is_webhook = is_webhook
        event.member = member
        event.author.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        event.message.timestamp = datetime(2024, 1, 2, tzinfo=timezone.utc)
        event.get_guild.return_value = MagicMock()
        event.get_guild.return_value.name = "Dark City"
        return event

    def test_fields_copied(self):
        """Test ids, text and timestamps come through in milliseconds."""
        member = _member(role_ids=[7, 8])
        message = build_inbound_message(self._event(member), BotConfig(GUILD_ID, MOD_ROLE_ID))

        assert message.author_id == USER_ID
        assert message.community_id == GUILD_ID
        assert message.channel_id == CHANNEL_ID
        assert message.message_id == 42
        assert message.text == "hello"
        assert message.timestamp - message.author_created_at == 86_400_000
        assert message.author_role_ids == frozenset({7, 8})
        assert message.community_name == "Dark City"
        assert message.author_is_bot is False
        assert message.author_has_mod_permission is False

    def test_webhook_counts_as_bot(self):
        """Test webhook messages are treated like bot messages."""
        message = build_inbound_message(
            self._event(is_webhook=True), BotConfig(GUILD_ID, MOD_ROLE_ID)
        )

        assert message.author_is_bot is True

    def test_missing_member_and_guild(self):
        """Test uncached member and guild fall back to safe values."""
        event = self._event(content=None)
        event.get_guild.return_value = None

        message = build_inbound_message(event, BotConfig(GUILD_ID, MOD_ROLE_ID))

        assert message.text == ""
        assert message.author_role_ids == frozenset()
        assert message.community_name == "this server"


class TestRequireModerator:
    """Tests for gating admin and moderator commands."""

    def _ctx(self, member, guild_id=GUILD_ID):
        ctx = MagicMock()
        ctx.guild_id = guild_id
        ctx.member = member
        return ctx

    def test_moderator_allowed(self):
        """Test a moderator in the configured guild passes."""
        ctx = self._ctx(_member(role_ids=[MOD_ROLE_ID]))

        require_moderator(ctx, BotConfig(GUILD_ID, MOD_ROLE_ID))

    def test_member_rejected(self):
        """Test an ordinary member is refused."""
        with pytest.raises(CityWatchPermissionError, match="mods only"):
            require_moderator(self._ctx(_member()), BotConfig(GUILD_ID, MOD_ROLE_ID))

    def test_other_guild_rejected(self):
        """Test commands from another guild are refused even for moderators."""
        ctx = self._ctx(_member(role_ids=[MOD_ROLE_ID]), guild_id=GUILD_ID + 1)

        with pytest.raises(CityWatchPermissionError, match="not configured"):
            require_moderator(ctx, BotConfig(GUILD_ID, MOD_ROLE_ID))
