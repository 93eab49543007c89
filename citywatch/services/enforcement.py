import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Optional, Protocol, Set, Tuple

import hikari

from citywatch.core.types import ActionErrorKind, ActionResult
from citywatch.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MessageHandle:
    """A message the bot posted and may delete later"""

    channel_id: int
    message_id: int


class EnforcementActions(Protocol):
    async def delete_message(self, channel_id: int, message_id: int) -> ActionResult: ...

    async def send_channel_message(
        self, channel_id: int, text: str
    ) -> Tuple[ActionResult, Optional[MessageHandle]]: ...

    def delete_after(self, handle: MessageHandle, delay_ms: int) -> None: ...

    async def send_direct_message(self, user_id: int, text: str) -> ActionResult: ...

    async def timeout_member(
        self, guild_id: int, user_id: int, minutes: int, reason: str
    ) -> ActionResult: ...


def classify_error(exc: BaseException) -> ActionErrorKind:
    """Map a platform exception onto the automod error taxonomy"""
    if isinstance(exc, hikari.ForbiddenError):
        return ActionErrorKind.FORBIDDEN
    if isinstance(exc, hikari.NotFoundError):
        return ActionErrorKind.NOT_FOUND
    if isinstance(exc, hikari.RateLimitTooLongError):
        return ActionErrorKind.RATE_LIMITED
    if isinstance(exc, hikari.HTTPResponseError) and getattr(exc, "status", None) == 429:
        return ActionErrorKind.RATE_LIMITED
    if isinstance(exc, (hikari.InternalServerError, asyncio.TimeoutError, OSError)):
        return ActionErrorKind.NETWORK
    return ActionErrorKind.UNKNOWN


async def attempt(operation: str, call: Awaitable[object]) -> ActionResult:
    """Await a platform call, converting any failure into an ActionResult"""
    try:
        await call
    except Exception as e:
        kind = classify_error(e)
        logger.debug(f"{operation} failed ({kind.value}): {e}")
        return ActionResult.failure(kind, str(e) or type(e).__name__)
    return ActionResult.success()


class HikariEnforcement:
    """EnforcementActions backed by the hikari REST client."""

    def __init__(self, rest: hikari.api.RESTClient):
        self.rest = rest
        self._pending: Set[asyncio.Task[None]] = set()

    async def delete_message(self, channel_id: int, message_id: int) -> ActionResult:
        return await attempt("delete_message", self.rest.delete_message(channel_id, message_id))

    async def send_channel_message(
        self, channel_id: int, text: str
    ) -> Tuple[ActionResult, Optional[MessageHandle]]:
        try:
            message = await self.rest.create_message(channel_id, text, user_mentions=True)
        except Exception as e:
            kind = classify_error(e)
            return ActionResult.failure(kind, str(e) or type(e).__name__), None

        return ActionResult.success(), MessageHandle(channel_id=channel_id, message_id=message.id)

    def delete_after(self, handle: MessageHandle, delay_ms: int) -> None:
        if delay_ms <= 0:
            return

        task = asyncio.create_task(self._delete_later(handle, delay_ms))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _delete_later(self, handle: MessageHandle, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)

        result = await self.delete_message(handle.channel_id, handle.message_id)
        if not result.ok:
            logger.warning(
                f"Could not remove warning message {handle.message_id} "
                f"({result.error_kind.value if result.error_kind else 'unknown'}): {result.detail}"
            )

    async def send_direct_message(self, user_id: int, text: str) -> ActionResult:
        try:
            dm_channel = await self.rest.create_dm_channel(user_id)
        except Exception as e:
            return ActionResult.failure(classify_error(e), str(e) or type(e).__name__)

        return await attempt("send_direct_message", self.rest.create_message(dm_channel, text))

    async def timeout_member(
        self, guild_id: int, user_id: int, minutes: int, reason: str
    ) -> ActionResult:
        until = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        return await attempt(
            "timeout_member",
            self.rest.edit_member(
                guild_id, user_id, communication_disabled_until=until, reason=reason
            ),
        )
