import arc
import hikari

from citywatch.core.types import BotConfig, InboundMessage, Verdict
from citywatch.services.moderation_pipeline import ModerationPipeline
from citywatch.utils.logging import get_logger
from citywatch.utils.permissions import has_mod_permission

logger = get_logger(__name__)

plugin = arc.GatewayPlugin("events")


def _to_ms(moment) -> int:
    return int(moment.timestamp() * 1000)


def build_inbound_message(event: hikari.GuildMessageCreateEvent, config: BotConfig) -> InboundMessage:
    """Flatten a gateway event into the record the pipeline works on"""
    member = event.member
    guild = event.get_guild()

    return InboundMessage(
        author_id=event.author_id,
        author_is_bot=event.is_bot or event.is_webhook,
        author_created_at=_to_ms(event.author.created_at),
        author_has_mod_permission=has_mod_permission(member, config.moderator_role_id),
        author_role_ids=frozenset(member.role_ids) if member else frozenset(),
        community_id=event.guild_id,
        channel_id=event.channel_id,
        message_id=event.message_id,
        text=event.content or "",
        timestamp=_to_ms(event.message.timestamp),
        community_name=guild.name if guild else "this server",
    )


@plugin.listen()
async def on_message_create(event: hikari.GuildMessageCreateEvent) -> None:
    """Run every guild message through the automod pipeline"""
    if event.is_bot or not event.content:
        return

    pipeline = plugin.client.get_type_dependency(ModerationPipeline)
    config = plugin.client.get_type_dependency(BotConfig)

    try:
        message = build_inbound_message(event, config)
    except Exception as e:
        logger.error(f"Could not read message {event.message_id}: {e}", exc_info=True)
        return

    outcome = await pipeline.handle(message)

    if outcome.verdict is Verdict.ENFORCED:
        logger.debug(
            f"Message {event.message_id} enforced by {outcome.rule} "
            f"({outcome.reason}; actions: {', '.join(outcome.actions) or 'none'})"
        )


@plugin.listen()
async def on_started(_: hikari.StartedEvent) -> None:
    """Bot startup event handler."""
    logger.info("Automod listener initialised and running.")


@arc.loader
def load(client: arc.GatewayClient) -> None:
    client.add_plugin(plugin)


@arc.unloader
def unload(client: arc.GatewayClient) -> None:
    client.remove_plugin(plugin)
