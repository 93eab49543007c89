import arc
import hikari

from citywatch.core.constants import MODERATOR_CONFIG
from citywatch.core.types import ActionResult, BotConfig
from citywatch.services.moderator_tools import ModeratorTools
from citywatch.utils.errors import PermissionError as CityWatchPermissionError
from citywatch.utils.logging import get_logger
from citywatch.utils.permissions import require_moderator

logger = get_logger(__name__)

plugin = arc.GatewayPlugin(
    "moderator_commands", default_permissions=hikari.Permissions.MODERATE_MEMBERS
)


@plugin.set_error_handler
async def on_command_error(ctx: arc.GatewayContext, exc: Exception) -> None:
    if isinstance(exc, CityWatchPermissionError):
        await ctx.respond(f"❌ {str(exc)}", flags=hikari.MessageFlag.EPHEMERAL)
        return
    raise exc


def failure_text(action: str, result: ActionResult) -> str:
    kind = result.error_kind.value if result.error_kind else "unknown"
    if kind == "forbidden":
        return f"❌ I don't have permission to {action}."
    return f"❌ Could not {action} ({kind}). Please try again later."


@plugin.include
@arc.slash_command("purge", "Bulk delete recent messages in this channel")
async def purge(
    ctx: arc.GatewayContext,
    count: arc.Option[
        int,
        arc.IntParams(
            "How many messages to delete", min=1, max=MODERATOR_CONFIG.PURGE_MAX_MESSAGES
        ),
    ],
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)
    await ctx.defer(flags=hikari.MessageFlag.EPHEMERAL)

    result, deleted = await tools.purge(ctx.channel_id, count, ctx.user.id)
    if not result.ok:
        await ctx.respond(failure_text("delete messages here", result))
        return

    await ctx.respond(f"🧹 Deleted {deleted} messages.")


@plugin.include
@arc.slash_command("timeout", "Time out a member")
async def timeout(
    ctx: arc.GatewayContext,
    user: arc.Option[hikari.User, arc.UserParams("The member to time out")],
    minutes: arc.Option[
        int,
        arc.IntParams(
            "How long the timeout lasts", min=1, max=MODERATOR_CONFIG.TIMEOUT_MAX_MINUTES
        ),
    ],
    reason: arc.Option[str | None, arc.StrParams("Why the member is timed out")] = None,
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    result = await tools.timeout(user.id, minutes, reason, ctx.user.id, ctx.channel_id)
    if not result.ok:
        await ctx.respond(
            failure_text("time out that member", result), flags=hikari.MessageFlag.EPHEMERAL
        )
        return

    await ctx.respond(
        f"⏱️ Timed out {user.mention} for {minutes} minute(s).",
        flags=hikari.MessageFlag.EPHEMERAL,
    )


@plugin.include
@arc.slash_command("untimeout", "Remove a member's timeout")
async def untimeout(
    ctx: arc.GatewayContext,
    user: arc.Option[hikari.User, arc.UserParams("The member to release")],
    reason: arc.Option[str | None, arc.StrParams("Why the timeout is lifted")] = None,
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    result = await tools.untimeout(user.id, reason, ctx.user.id, ctx.channel_id)
    if not result.ok:
        await ctx.respond(
            failure_text("remove that timeout", result), flags=hikari.MessageFlag.EPHEMERAL
        )
        return

    await ctx.respond(
        f"✅ Removed timeout for {user.mention}.", flags=hikari.MessageFlag.EPHEMERAL
    )


@plugin.include
@arc.slash_command("slowmode", "Set slowmode for this channel")
async def slowmode(
    ctx: arc.GatewayContext,
    seconds: arc.Option[
        int,
        arc.IntParams(
            "Seconds between messages (0 turns it off)",
            min=0,
            max=MODERATOR_CONFIG.SLOWMODE_MAX_SECONDS,
        ),
    ],
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    result = await tools.slowmode(ctx.channel_id, seconds, ctx.user.id)
    if not result.ok:
        await ctx.respond(
            failure_text("change slowmode here", result), flags=hikari.MessageFlag.EPHEMERAL
        )
        return

    await ctx.respond(f"🐢 Slowmode set to {seconds}s.", flags=hikari.MessageFlag.EPHEMERAL)


async def _set_locked(
    ctx: arc.GatewayContext,
    locked: bool,
    reason: str | None,
    tools: ModeratorTools,
    config: BotConfig,
) -> None:
    require_moderator(ctx, config)

    result = await tools.set_locked(ctx.channel_id, locked, reason, ctx.user.id)
    if not result.ok:
        action = "lock this channel" if locked else "unlock this channel"
        await ctx.respond(failure_text(action, result), flags=hikari.MessageFlag.EPHEMERAL)
        return

    await ctx.respond(
        "🔒 Channel locked." if locked else "🔓 Channel unlocked.",
        flags=hikari.MessageFlag.EPHEMERAL,
    )


@plugin.include
@arc.slash_command("lock", "Stop @everyone from sending messages in this channel")
async def lock(
    ctx: arc.GatewayContext,
    reason: arc.Option[str | None, arc.StrParams("Why the channel is locked")] = None,
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    await _set_locked(ctx, True, reason, tools, config)


@plugin.include
@arc.slash_command("unlock", "Let @everyone send messages in this channel again")
async def unlock(
    ctx: arc.GatewayContext,
    reason: arc.Option[str | None, arc.StrParams("Why the channel is unlocked")] = None,
    tools: ModeratorTools = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    await _set_locked(ctx, False, reason, tools, config)


@arc.loader
def loader(client: arc.GatewayClient) -> None:
    """Load the moderator commands plugin"""
    client.add_plugin(plugin)
    logger.info("Moderator commands plugin loaded")


@arc.unloader
def unloader(client: arc.GatewayClient) -> None:
    """Unload the moderator commands plugin"""
    client.remove_plugin(plugin)
    logger.info("Moderator commands plugin unloaded")
