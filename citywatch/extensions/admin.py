import arc
import hikari

from citywatch.core.types import BotConfig, ModerationSettings
from citywatch.database.repository import Repository
from citywatch.services.settings_store import SettingsStore
from citywatch.utils.errors import PermissionError as CityWatchPermissionError
from citywatch.utils.logging import get_logger
from citywatch.utils.permissions import require_moderator

logger = get_logger(__name__)

plugin = arc.GatewayPlugin("admin_commands", default_permissions=hikari.Permissions.MANAGE_MESSAGES)

TOGGLES = {
    "Invite link removal": "invite_auto_delete",
    "Invite warnings": "invite_warn",
    "Low-trust link filter": "low_trust_filter_enabled",
    "Low-trust DMs": "low_trust_warn_dm",
    "Spam filter": "spam_enabled",
    "Spam warnings": "spam_warn_enabled",
    "Spam timeouts": "spam_timeout_enabled",
}


@plugin.set_error_handler
async def on_command_error(ctx: arc.GatewayContext, exc: Exception) -> None:
    if isinstance(exc, CityWatchPermissionError):
        await ctx.respond(
            f"❌ {str(exc)}",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        return
    raise exc


def _on_off(value: bool) -> str:
    return "✅ On" if value else "❌ Off"


def _mentions(ids, prefix: str) -> str:
    if not ids:
        return "None"
    return ", ".join(f"<{prefix}{i}>" for i in sorted(ids))


def build_settings_embed(settings: ModerationSettings) -> hikari.Embed:
    embed = hikari.Embed(
        title="🛡️ Automod Configuration",
        color=hikari.Color(0x5865F2) if settings.spam_enabled else hikari.Color(0x99AAB5),
    )
    embed.add_field(
        name="🔗 Invite Links",
        value=(
            f"**Delete:** {_on_off(settings.invite_auto_delete)}\n"
            f"**Warn:** {_on_off(settings.invite_warn)} "
            f"(removed after {settings.invite_warn_delete_seconds:g}s)"
        ),
        inline=False,
    )
    embed.add_field(
        name="🐣 Low-Trust Accounts",
        value=(
            f"**Filter:** {_on_off(settings.low_trust_filter_enabled)}\n"
            f"**Minimum account age:** {settings.low_trust_min_account_age_days:g} day(s)\n"
            f"**DM:** {_on_off(settings.low_trust_warn_dm)}"
        ),
        inline=False,
    )
    embed.add_field(
        name="🌊 Flood & Repeats",
        value=(
            f"**Filter:** {_on_off(settings.spam_enabled)}\n"
            f"**Flood:** more than {settings.flood_max_messages} messages in "
            f"{settings.flood_window_seconds:g}s\n"
            f"**Repeats:** {settings.repeat_max_repeats} repeats within "
            f"{settings.repeat_window_seconds:g}s\n"
            f"**Warn:** {_on_off(settings.spam_warn_enabled)} "
            f"(removed after {settings.spam_warn_delete_seconds:g}s)\n"
            f"**Timeout:** {_on_off(settings.spam_timeout_enabled)} "
            f"({settings.spam_timeout_minutes:g} min from the second strike)\n"
            f"**Strikes reset after:** {settings.strike_decay_minutes:g} min"
        ),
        inline=False,
    )
    embed.add_field(
        name="🚫 Exemptions",
        value=(
            f"**Ignored channels:** {_mentions(settings.ignored_channel_ids, '#')}\n"
            f"**Bypass roles:** {_mentions(settings.bypass_role_ids, '@&')}"
        ),
        inline=False,
    )
    embed.set_footer(text="Settings reload automatically every 30 seconds")
    return embed


automod = plugin.include_slash_group("automod", "Automod configuration commands.")


@automod.include
@arc.slash_subcommand("show", "View the current automod configuration")
async def show_settings(
    ctx: arc.GatewayContext,
    store: SettingsStore = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)
    await ctx.respond(embed=build_settings_embed(store.get()), flags=hikari.MessageFlag.EPHEMERAL)


@automod.include
@arc.slash_subcommand("reload", "Reload automod settings now")
async def reload_settings(
    ctx: arc.GatewayContext,
    store: SettingsStore = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    settings = await store.refresh()
    await ctx.respond(
        "🔄 Automod settings reloaded.",
        embed=build_settings_embed(settings),
        flags=hikari.MessageFlag.EPHEMERAL,
    )
    logger.info(f"Automod settings reloaded by user {ctx.user.id}")


@automod.include
@arc.slash_subcommand("toggle", "Turn an automod feature on or off")
async def toggle_feature(
    ctx: arc.GatewayContext,
    feature: arc.Option[str, arc.StrParams("The feature to change", choices=TOGGLES)],
    enabled: arc.Option[bool, arc.BoolParams("Whether the feature should be on")],
    store: SettingsStore = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    try:
        await store.update(**{feature: enabled})
        await ctx.respond(
            f"✅ `{feature}` is now **{'on' if enabled else 'off'}**.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        logger.info(f"Automod {feature} set to {enabled} by user {ctx.user.id}")
    except Exception as e:
        logger.error(f"Failed to update automod {feature}: {e}", exc_info=True)
        await ctx.respond(
            "❌ An error occurred while updating the automod settings. Please try again later.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )


@automod.include
@arc.slash_subcommand("ignore-channel", "Exempt a channel from the flood and repeat filter")
async def ignore_channel(
    ctx: arc.GatewayContext,
    ignored: arc.Option[bool, arc.BoolParams("Whether the channel should be exempt")],
    channel: arc.Option[
        hikari.TextableGuildChannel | None, arc.ChannelParams("The channel to change")
    ] = None,
    store: SettingsStore = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    target_channel_id = channel.id if channel else ctx.channel_id
    channel_ids = set(store.get().ignored_channel_ids)
    if ignored:
        channel_ids.add(target_channel_id)
    else:
        channel_ids.discard(target_channel_id)

    try:
        await store.update(ignored_channel_ids=sorted(channel_ids))
        await ctx.respond(
            f"✅ <#{target_channel_id}> is "
            f"{'now exempt from' if ignored else 'now covered by'} the spam filter.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        logger.info(f"Channel {target_channel_id} ignored={ignored} by user {ctx.user.id}")
    except Exception as e:
        logger.error(f"Failed to update ignored channels: {e}", exc_info=True)
        await ctx.respond(
            "❌ An error occurred while updating the automod settings. Please try again later.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )


@automod.include
@arc.slash_subcommand("bypass-role", "Let a role skip the flood and repeat filter")
async def bypass_role(
    ctx: arc.GatewayContext,
    role: arc.Option[hikari.Role, arc.RoleParams("The role to change")],
    bypass: arc.Option[bool, arc.BoolParams("Whether the role should bypass the filter")],
    store: SettingsStore = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    role_ids = set(store.get().bypass_role_ids)
    if bypass:
        role_ids.add(role.id)
    else:
        role_ids.discard(role.id)

    try:
        await store.update(bypass_role_ids=sorted(role_ids))
        await ctx.respond(
            f"✅ {role.mention} {'now bypasses' if bypass else 'no longer bypasses'} "
            "the spam filter.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        logger.info(f"Role {role.id} bypass={bypass} by user {ctx.user.id}")
    except Exception as e:
        logger.error(f"Failed to update bypass roles: {e}", exc_info=True)
        await ctx.respond(
            "❌ An error occurred while updating the automod settings. Please try again later.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )


@automod.include
@arc.slash_subcommand("log", "Show the most recent automod actions")
async def recent_log(
    ctx: arc.GatewayContext,
    limit: arc.Option[int, arc.IntParams("How many entries to show", min=1, max=25)] = 10,
    repo: Repository = arc.inject(),
    config: BotConfig = arc.inject(),
) -> None:
    require_moderator(ctx, config)

    try:
        events = await repo.get_recent_events(config.guild_id, limit=limit)
    except Exception as e:
        logger.error(f"Failed to read automod log: {e}", exc_info=True)
        await ctx.respond(
            "❌ An error occurred while reading the automod log. Please try again later.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        return

    if not events:
        await ctx.respond("No automod actions recorded yet.", flags=hikari.MessageFlag.EPHEMERAL)
        return

    lines = []
    for record in events:
        user = record["meta"].get("user_id")
        who = f" <@{user}>" if user else ""
        lines.append(f"<t:{record['created_at']}:R> `{record['event']}`{who}")

    embed = hikari.Embed(
        title="📜 Recent Automod Actions",
        description="\n".join(lines),
        color=hikari.Color(0x5865F2),
    )
    await ctx.respond(embed=embed, flags=hikari.MessageFlag.EPHEMERAL)


@arc.loader
def loader(client: arc.GatewayClient) -> None:
    """Load the admin commands plugin"""
    client.add_plugin(plugin)
    logger.info("Admin commands plugin loaded")


@arc.unloader
def unloader(client: arc.GatewayClient) -> None:
    """Unload the admin commands plugin"""
    client.remove_plugin(plugin)
    logger.info("Admin commands plugin unloaded")
