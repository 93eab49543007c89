from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import hikari

from citywatch.core.constants import MODERATOR_CONFIG
from citywatch.core.types import ActionErrorKind, ActionResult
from citywatch.services.enforcement import attempt, classify_error
from citywatch.services.event_log import EventLog


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class ModeratorTools:
    """Manual moderation actions used by the moderator slash commands.

    Every action returns an ActionResult instead of raising. Successful actions
    are recorded as `mod_*` events, failures as `mod_action_failed`.
    """

    def __init__(self, rest: hikari.api.RESTClient, events: EventLog, guild_id: int):
        self.rest = rest
        self.events = events
        self.guild_id = guild_id

    async def _failed(self, action: str, result: ActionResult, **meta) -> ActionResult:
        await self.events.error(
            "mod_action_failed",
            result.detail,
            action=action,
            error_kind=result.error_kind.value if result.error_kind else "unknown",
            **meta,
        )
        return result

    async def purge(
        self, channel_id: int, count: int, moderator_id: int
    ) -> Tuple[ActionResult, int]:
        """Bulk delete up to `count` recent messages, returning how many were removed.

        Messages older than the bulk delete limit are left alone.
        """
        limit = _clamp(count, 1, MODERATOR_CONFIG.PURGE_MAX_MESSAGES)
        cutoff = datetime.now(timezone.utc) - timedelta(
            days=MODERATOR_CONFIG.BULK_DELETE_MAX_AGE_DAYS
        )
        meta = {"user_id": moderator_id, "channel_id": channel_id, "count": limit}

        try:
            recent = [
                message
                async for message in self.rest.fetch_messages(channel_id).limit(limit)
                if message.created_at > cutoff
            ]
            if recent:
                await self.rest.delete_messages(channel_id, recent)
        except Exception as e:
            result = ActionResult.failure(classify_error(e), str(e) or type(e).__name__)
            return await self._failed("purge", result, **meta), 0

        await self.events.info("mod_purge", "Purged messages", deleted=len(recent), **meta)
        return ActionResult.success(), len(recent)

    async def timeout(
        self,
        user_id: int,
        minutes: int,
        reason: Optional[str],
        moderator_id: int,
        channel_id: Optional[int] = None,
    ) -> ActionResult:
        minutes = _clamp(minutes, 1, MODERATOR_CONFIG.TIMEOUT_MAX_MINUTES)
        until = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        meta = {
            "user_id": moderator_id,
            "target_id": user_id,
            "minutes": minutes,
            "reason": reason,
            "channel_id": channel_id,
        }

        result = await attempt(
            "mod_timeout",
            self.rest.edit_member(
                self.guild_id,
                user_id,
                communication_disabled_until=until,
                reason=reason or hikari.UNDEFINED,
            ),
        )
        if not result.ok:
            return await self._failed("timeout", result, **meta)

        await self.events.info("mod_timeout", "Timed out member", **meta)
        return result

    async def untimeout(
        self,
        user_id: int,
        reason: Optional[str],
        moderator_id: int,
        channel_id: Optional[int] = None,
    ) -> ActionResult:
        meta = {
            "user_id": moderator_id,
            "target_id": user_id,
            "reason": reason,
            "channel_id": channel_id,
        }

        result = await attempt(
            "mod_untimeout",
            self.rest.edit_member(
                self.guild_id,
                user_id,
                communication_disabled_until=None,
                reason=reason or hikari.UNDEFINED,
            ),
        )
        if not result.ok:
            return await self._failed("untimeout", result, **meta)

        await self.events.info("mod_untimeout", "Removed timeout", **meta)
        return result

    async def slowmode(self, channel_id: int, seconds: int, moderator_id: int) -> ActionResult:
        seconds = _clamp(seconds, 0, MODERATOR_CONFIG.SLOWMODE_MAX_SECONDS)
        meta = {"user_id": moderator_id, "channel_id": channel_id, "seconds": seconds}

        result = await attempt(
            "mod_slowmode", self.rest.edit_channel(channel_id, rate_limit_per_user=seconds)
        )
        if not result.ok:
            return await self._failed("slowmode", result, **meta)

        await self.events.info("mod_slowmode", "Set slowmode", **meta)
        return result

    async def set_locked(
        self, channel_id: int, locked: bool, reason: Optional[str], moderator_id: int
    ) -> ActionResult:
        """Deny or restore Send Messages for @everyone, keeping the rest of its overwrite"""
        action = "lock" if locked else "unlock"
        meta = {"user_id": moderator_id, "channel_id": channel_id, "reason": reason}

        try:
            channel = await self.rest.fetch_channel(channel_id)
        except Exception as e:
            result = ActionResult.failure(classify_error(e), str(e) or type(e).__name__)
            return await self._failed(action, result, **meta)

        if not isinstance(channel, hikari.PermissibleGuildChannel):
            result = ActionResult.failure(ActionErrorKind.NOT_FOUND, "Not a server channel")
            return await self._failed(action, result, **meta)

        # The @everyone role shares the guild's id
        everyone_id = hikari.Snowflake(self.guild_id)
        existing = channel.permission_overwrites.get(everyone_id)
        allow = existing.allow if existing else hikari.Permissions.NONE
        deny = existing.deny if existing else hikari.Permissions.NONE

        allow &= ~hikari.Permissions.SEND_MESSAGES
        if locked:
            deny |= hikari.Permissions.SEND_MESSAGES
        else:
            deny &= ~hikari.Permissions.SEND_MESSAGES

        result = await attempt(
            f"mod_{action}",
            self.rest.edit_permission_overwrite(
                channel_id,
                everyone_id,
                target_type=hikari.PermissionOverwriteType.ROLE,
                allow=allow,
                deny=deny,
                reason=reason or hikari.UNDEFINED,
            ),
        )
        if not result.ok:
            return await self._failed(action, result, **meta)

        await self.events.info(
            f"mod_{action}", "Locked channel" if locked else "Unlocked channel", **meta
        )
        return result
