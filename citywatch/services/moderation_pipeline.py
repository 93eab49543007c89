import re
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from citywatch.core.constants import AUTOMOD_CONFIG
from citywatch.core.types import (
    ActionResult,
    InboundMessage,
    ModerationOutcome,
    ModerationSettings,
    Rule,
)
from citywatch.services.cooldowns import CommandCooldown, CooldownMap, stale_after_ms
from citywatch.services.enforcement import EnforcementActions
from citywatch.services.event_log import EventLog
from citywatch.services.normalizer import normalize
from citywatch.services.settings_store import SettingsStore
from citywatch.services.trackers import RepeatTracker, SlidingWindowTracker, StrikeLedger
from citywatch.utils.logging import get_logger, message_context

logger = get_logger(__name__)

INVITE_RE = re.compile(AUTOMOD_CONFIG.INVITE_PATTERN, re.IGNORECASE)
URL_RE = re.compile(AUTOMOD_CONFIG.URL_PATTERN, re.IGNORECASE)

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _error_kind(result: ActionResult) -> str:
    return result.error_kind.value if result.error_kind else "unknown"


@dataclass
class ModerationState:
    """All short-lived per-user and per-channel state owned by one pipeline"""

    activity: SlidingWindowTracker = field(default_factory=SlidingWindowTracker)
    repeats: RepeatTracker = field(default_factory=RepeatTracker)
    strikes: StrikeLedger = field(default_factory=StrikeLedger)
    invite_warns: CooldownMap = field(default_factory=CooldownMap)
    low_trust_dms: CooldownMap = field(default_factory=CooldownMap)
    spam_warns: CooldownMap = field(default_factory=CooldownMap)
    roll_cooldown: CommandCooldown = field(default_factory=CommandCooldown)


class ModerationPipeline:
    """Ordered automod rules for inbound guild messages.

    Rules are checked in priority order and the first match wins:
    invite links, links from low-trust accounts, then flood/repeat spam.
    Platform calls never raise into the caller; their failures are logged
    through the event log.
    """

    def __init__(
        self,
        settings: SettingsStore,
        actions: EnforcementActions,
        events: EventLog,
        guild_id: int,
        state: Optional[ModerationState] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.actions = actions
        self.events = events
        self.guild_id = guild_id
        self.state = state or ModerationState()
        self.clock = clock or wall_clock_ms

    async def handle(self, message: InboundMessage) -> ModerationOutcome:
        """Evaluate one message. Unexpected errors let the message through."""
        with message_context(message.community_id, message.channel_id, message.author_id):
            try:
                return await self._evaluate(message)
            except Exception as e:
                logger.error(f"Error moderating message {message.message_id}: {e}", exc_info=True)
                await self.events.error(
                    "message_create_error",
                    str(e) or type(e).__name__,
                    message_id=message.message_id,
                )
                return ModerationOutcome.allowed("error")

    async def _evaluate(self, message: InboundMessage) -> ModerationOutcome:
        settings = self.settings.get()

        if message.author_is_bot:
            return ModerationOutcome.allowed("bot author")
        if message.community_id != self.guild_id:
            return ModerationOutcome.allowed("other community")
        if not message.text:
            return ModerationOutcome.allowed("empty message")
        if message.author_has_mod_permission:
            return ModerationOutcome.allowed("moderator")
        if not message.author_id or not message.channel_id or not message.message_id:
            return ModerationOutcome.allowed("incomplete message")

        now = self.clock()

        if settings.invite_auto_delete and INVITE_RE.search(message.text):
            return await self._enforce_invite(message, settings, now)

        if (
            settings.low_trust_filter_enabled
            and URL_RE.search(message.text)
            and self.is_low_trust(message, settings, now)
        ):
            return await self._enforce_low_trust(message, settings, now)

        if (
            settings.spam_enabled
            and message.channel_id not in settings.ignored_channel_ids
            and not (message.author_role_ids & settings.bypass_role_ids)
        ):
            return await self._check_spam(message, settings, now)

        return ModerationOutcome.allowed()

    @staticmethod
    def is_low_trust(message: InboundMessage, settings: ModerationSettings, now: int) -> bool:
        if not message.author_created_at:
            return False

        min_age_ms = settings.low_trust_min_account_age_days * AUTOMOD_CONFIG.DAY_MS
        return now - message.author_created_at < min_age_ms

    async def _warn_in_channel(
        self, message: InboundMessage, text: str, delete_after_seconds: float, event: str
    ) -> bool:
        result, handle = await self.actions.send_channel_message(message.channel_id, text)
        if not result.ok:
            await self.events.warn(
                event,
                result.detail,
                user_id=message.author_id,
                channel_id=message.channel_id,
                error_kind=_error_kind(result),
            )
            return False

        delay_ms = int(delete_after_seconds * 1000)
        if handle is not None and delay_ms > 0:
            self.actions.delete_after(handle, delay_ms)
        return True

    async def _enforce_invite(
        self, message: InboundMessage, settings: ModerationSettings, now: int
    ) -> ModerationOutcome:
        meta = {
            "user_id": message.author_id,
            "channel_id": message.channel_id,
            "message_id": message.message_id,
        }

        result = await self.actions.delete_message(message.channel_id, message.message_id)
        if not result.ok:
            await self.events.error(
                "automod_invite_delete_failed", result.detail, error_kind=_error_kind(result), **meta
            )
            return ModerationOutcome.enforced(Rule.INVITE, "delete failed", [])

        await self.events.info("automod_invite_deleted", "Deleted Discord invite link", **meta)
        actions = ["delete"]

        if settings.invite_warn and self.state.invite_warns.try_acquire(
            message.author_id, AUTOMOD_CONFIG.INVITE_WARN_COOLDOWN_MS, now
        ):
            warned = await self._warn_in_channel(
                message,
                f"⚠️ <@{message.author_id}> invite links aren't allowed here. "
                "If you think this was a mistake, message a moderator.",
                settings.invite_warn_delete_seconds,
                "automod_invite_warn_failed",
            )
            if warned:
                actions.append("warn")

        return ModerationOutcome.enforced(Rule.INVITE, "invite link", actions)

    async def _enforce_low_trust(
        self, message: InboundMessage, settings: ModerationSettings, now: int
    ) -> ModerationOutcome:
        meta = {
            "user_id": message.author_id,
            "channel_id": message.channel_id,
            "message_id": message.message_id,
        }

        result = await self.actions.delete_message(message.channel_id, message.message_id)
        if not result.ok:
            await self.events.error(
                "automod_lowtrust_link_delete_failed",
                result.detail,
                error_kind=_error_kind(result),
                **meta,
            )
            return ModerationOutcome.enforced(Rule.LOW_TRUST, "delete failed", [])

        await self.events.info(
            "automod_lowtrust_link_deleted",
            "Deleted link from low-trust account",
            min_account_age_days=settings.low_trust_min_account_age_days,
            **meta,
        )
        actions = ["delete"]

        if settings.low_trust_warn_dm and self.state.low_trust_dms.try_acquire(
            message.author_id, AUTOMOD_CONFIG.LOW_TRUST_DM_COOLDOWN_MS, now
        ):
            days = settings.low_trust_min_account_age_days
            dm = await self.actions.send_direct_message(
                message.author_id,
                f"Your message in **{message.community_name}** was removed because new accounts "
                f"can't post links yet. Please wait until your account is at least **{days:g} "
                "day(s)** old, or message a moderator if you think this was a mistake.",
            )
            if dm.ok:
                actions.append("dm")
            else:
                await self.events.warn(
                    "automod_lowtrust_dm_failed",
                    dm.detail,
                    user_id=message.author_id,
                    error_kind=_error_kind(dm),
                )

        return ModerationOutcome.enforced(Rule.LOW_TRUST, "link from low-trust account", actions)

    async def _check_spam(
        self, message: InboundMessage, settings: ModerationSettings, now: int
    ) -> ModerationOutcome:
        user_id = message.author_id

        flood_count = self.state.activity.observe(
            user_id, now, settings.flood_window_ms, settings.repeat_window_ms
        )
        repeats = self.state.repeats.observe(
            user_id, normalize(message.text), now, settings.repeat_window_ms
        )

        flood_triggered = flood_count > settings.flood_max_messages
        repeat_triggered = repeats >= settings.repeat_max_repeats
        if not (flood_triggered or repeat_triggered):
            return ModerationOutcome.allowed()

        reason = "message flood" if flood_triggered else "repeated messages"
        strikes = self.state.strikes.add(user_id, now, settings.strike_decay_ms)
        should_warn = settings.spam_warn_enabled and self.state.spam_warns.try_acquire(
            user_id, AUTOMOD_CONFIG.SPAM_WARN_COOLDOWN_MS, now
        )
        should_timeout = (
            settings.spam_timeout_enabled and strikes >= AUTOMOD_CONFIG.TIMEOUT_STRIKE_THRESHOLD
        )

        meta = {
            "user_id": user_id,
            "channel_id": message.channel_id,
            "reason": reason,
            "strikes": strikes,
        }
        actions: List[str] = []

        result = await self.actions.delete_message(message.channel_id, message.message_id)
        if result.ok:
            actions.append("delete")
            await self.events.info(
                "automod_spam_deleted",
                "Deleted spam message",
                message_id=message.message_id,
                flood_count_in_window=flood_count,
                repeats=repeats,
                **meta,
            )
        else:
            await self.events.error(
                "automod_spam_delete_failed",
                result.detail,
                message_id=message.message_id,
                flood_triggered=flood_triggered,
                repeat_triggered=repeat_triggered,
                error_kind=_error_kind(result),
                **meta,
            )

        if should_warn:
            warned = await self._warn_in_channel(
                message,
                f"⚠️ <@{user_id}> please slow down, spam ({reason}) isn't allowed. "
                "Continued spam may result in a timeout.",
                settings.spam_warn_delete_seconds,
                "automod_spam_warn_failed",
            )
            if warned:
                actions.append("warn")

        if should_timeout:
            minutes = int(
                max(
                    AUTOMOD_CONFIG.MIN_TIMEOUT_MINUTES,
                    min(AUTOMOD_CONFIG.MAX_TIMEOUT_MINUTES, settings.spam_timeout_minutes),
                )
            )
            timeout = await self.actions.timeout_member(
                self.guild_id, user_id, minutes, f"Auto-mod: spam ({reason})"
            )
            if timeout.ok:
                actions.append("timeout")
                await self.events.info(
                    "automod_spam_timeout", "Timed out member for spam", minutes=minutes, **meta
                )
            else:
                await self.events.error(
                    "automod_spam_timeout_failed",
                    timeout.detail,
                    minutes=minutes,
                    error_kind=_error_kind(timeout),
                    **meta,
                )

        return ModerationOutcome.enforced(Rule.SPAM, reason, actions)

    def claim_command_slot(self, user_id: int, channel_id: int) -> int:
        """Check the rate-limited command cooldowns.

        Returns the milliseconds left to wait, or 0 after stamping both keys.
        """
        settings = self.settings.get()
        now = self.clock()

        remaining = self.state.roll_cooldown.remaining(
            user_id,
            channel_id,
            settings.roll_cooldown_user_ms,
            settings.roll_cooldown_channel_ms,
            now,
        )
        if remaining > 0:
            return remaining

        self.state.roll_cooldown.stamp(user_id, channel_id, now)
        return 0

    def prune(self) -> int:
        """Forget entries that have been idle far longer than their window"""
        settings = self.settings.get()
        now = self.clock()
        state = self.state

        horizon = max(settings.flood_window_ms, settings.repeat_window_ms)

        removed = state.activity.prune(stale_after_ms(horizon), now)
        removed += state.repeats.prune(stale_after_ms(settings.repeat_window_ms), now)
        removed += state.strikes.prune(stale_after_ms(settings.strike_decay_ms), now)
        removed += state.invite_warns.prune(
            stale_after_ms(AUTOMOD_CONFIG.INVITE_WARN_COOLDOWN_MS), now
        )
        removed += state.low_trust_dms.prune(
            stale_after_ms(AUTOMOD_CONFIG.LOW_TRUST_DM_COOLDOWN_MS), now
        )
        removed += state.spam_warns.prune(stale_after_ms(AUTOMOD_CONFIG.SPAM_WARN_COOLDOWN_MS), now)
        removed += state.roll_cooldown.prune(
            settings.roll_cooldown_user_ms, settings.roll_cooldown_channel_ms, now
        )
        return removed
