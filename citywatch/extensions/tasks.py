import asyncio

import arc
import hikari

from citywatch.core.constants import DATABASE_CONFIG, PRUNE_CONFIG, SETTINGS_CONFIG
from citywatch.database.repository import Repository
from citywatch.services.moderation_pipeline import ModerationPipeline
from citywatch.services.settings_store import SettingsStore
from citywatch.utils.logging import get_logger

logger = get_logger(__name__)

plugin = arc.GatewayPlugin("tasks")


@arc.utils.interval_loop(seconds=SETTINGS_CONFIG.REFRESH_INTERVAL_SECONDS)
async def refresh_settings(store: SettingsStore) -> None:
    """Reload the automod settings snapshot."""
    try:
        await store.refresh()
    except Exception as e:
        logger.error(f"Error in refresh_settings task: {e}", exc_info=True)


@arc.utils.interval_loop(seconds=PRUNE_CONFIG.SWEEP_INTERVAL_SECONDS)
async def prune_state(pipeline: ModerationPipeline) -> None:
    """Drop tracker, strike and cooldown entries nobody has touched in a while."""
    try:
        removed = pipeline.prune()
        if removed:
            logger.debug(f"Pruned {removed} stale automod entries.")
    except Exception as e:
        logger.error(f"Error in prune_state task: {e}", exc_info=True)


@arc.utils.interval_loop(hours=1)
async def cleanup_old_logs(repo: Repository) -> None:
    try:
        removed = await repo.cleanup_old_events(days=DATABASE_CONFIG.LOG_RETENTION_DAYS)
        logger.info(f"Removed {removed} old automod log records.")
    except Exception as e:
        logger.error(f"Error cleaning up old logs: {e}", exc_info=True)


@plugin.listen()
async def on_started(_: hikari.StartedEvent) -> None:
    """Start background tasks."""

    await asyncio.sleep(2)

    store = plugin.client.get_type_dependency(SettingsStore)
    pipeline = plugin.client.get_type_dependency(ModerationPipeline)
    repo = plugin.client.get_type_dependency(Repository)

    refresh_settings.start(store=store)
    prune_state.start(pipeline=pipeline)
    cleanup_old_logs.start(repo=repo)

    logger.info("Background tasks started.")


@arc.loader
def load(client: arc.GatewayClient) -> None:
    client.add_plugin(plugin)


@arc.unloader
def unload(client: arc.GatewayClient) -> None:
    refresh_settings.stop()
    prune_state.stop()
    cleanup_old_logs.stop()
    client.remove_plugin(plugin)
