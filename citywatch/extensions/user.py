import random
from typing import Tuple

import arc
import hikari

from citywatch.services.cooldowns import retry_after_seconds
from citywatch.services.event_log import EventLog
from citywatch.services.moderation_pipeline import ModerationPipeline
from citywatch.utils.logging import get_logger

logger = get_logger(__name__)

plugin = arc.GatewayPlugin("user_commands")


def roll_2d6() -> Tuple[int, int, int]:
    d1 = random.randint(1, 6)
    d2 = random.randint(1, 6)
    return d1, d2, d1 + d2


async def respond_to_roll(
    ctx: arc.GatewayContext, pipeline: ModerationPipeline, events: EventLog
) -> None:
    """Roll for the caller unless the user or channel is still cooling down"""
    remaining = pipeline.claim_command_slot(ctx.user.id, ctx.channel_id)

    if remaining > 0:
        await ctx.respond(
            f"⏳ Slow down! Try again in {retry_after_seconds(remaining)}s.",
            flags=hikari.MessageFlag.EPHEMERAL,
        )
        return

    d1, d2, total = roll_2d6()
    await ctx.respond(f"🎲 2d6: {d1} + {d2} = **{total}**")

    await events.info(
        "roll_2d6",
        "Rolled 2d6",
        user_id=ctx.user.id,
        channel_id=ctx.channel_id,
        d1=d1,
        d2=d2,
        total=total,
    )


@plugin.include
@arc.slash_command("r", "Roll 2d6")
async def roll(
    ctx: arc.GatewayContext,
    pipeline: ModerationPipeline = arc.inject(),
    events: EventLog = arc.inject(),
) -> None:
    await respond_to_roll(ctx, pipeline, events)


@arc.loader
def loader(client: arc.GatewayClient) -> None:
    client.add_plugin(plugin)


@arc.unloader
def unloader(client: arc.GatewayClient) -> None:
    client.remove_plugin(plugin)
