import asyncio
import logging
import os

import arc
import hikari
from dotenv import load_dotenv

from citywatch.core.types import BotConfig
from citywatch.database.repository import Repository
from citywatch.services.enforcement import HikariEnforcement
from citywatch.services.event_log import EventLog
from citywatch.services.moderation_pipeline import ModerationPipeline
from citywatch.services.moderator_tools import ModeratorTools
from citywatch.services.settings_store import SettingsStore
from citywatch.utils.errors import ConfigurationError

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)


logger = logging.getLogger("citywatch")

if os.name != "nt":
    try:
        import uvloop

        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        logger.info("Using uvloop for improved performance.")
    except ImportError:
        logger.info("uvloop is not installed; using default asyncio event loop.")


def load_config() -> BotConfig:
    """Read the guild and moderator role from the environment"""
    guild_id = os.getenv("GUILD_ID")
    moderator_role = os.getenv("MODERATOR_ROLE_ID")

    if not os.getenv("TOKEN"):
        raise ConfigurationError("TOKEN is not set.")
    if not guild_id:
        raise ConfigurationError("GUILD_ID is not set.")

    try:
        return BotConfig(
            guild_id=int(guild_id),
            moderator_role_id=int(moderator_role) if moderator_role else None,
        )
    except ValueError as e:
        raise ConfigurationError(f"GUILD_ID and MODERATOR_ROLE_ID must be numeric ids: {e}") from e


config = load_config()

bot = hikari.GatewayBot(
    token=os.environ["TOKEN"],
    intents=(
        hikari.Intents.GUILDS
        | hikari.Intents.GUILD_MEMBERS
        | hikari.Intents.GUILD_MESSAGES
        | hikari.Intents.MESSAGE_CONTENT
    ),
)

client = arc.GatewayClient(bot)

db_path = os.getenv("DATABASE_PATH")
repo = Repository(db_path=db_path)
store = SettingsStore(repo, config.guild_id)
events = EventLog(repo, config.guild_id)
pipeline = ModerationPipeline(store, HikariEnforcement(bot.rest), events, config.guild_id)
moderator_tools = ModeratorTools(bot.rest, events, config.guild_id)


@client.add_startup_hook
async def on_startup(_: arc.GatewayClient) -> None:
    """Called when the bot starts up."""
    await repo.init()
    await store.ensure_defaults()
    await store.refresh()

    client.set_type_dependency(BotConfig, config)
    client.set_type_dependency(Repository, repo)
    client.set_type_dependency(SettingsStore, store)
    client.set_type_dependency(EventLog, events)
    client.set_type_dependency(ModerationPipeline, pipeline)
    client.set_type_dependency(ModeratorTools, moderator_tools)

    logger.info("Database initialised, settings loaded and dependencies set.")
    await events.info("bot_ready", "Bot started", guild_id=config.guild_id)


@client.add_shutdown_hook
async def on_shutdown(_: arc.GatewayClient) -> None:
    """Called when the bot is shutting down."""
    await repo.close()
    logger.info("CityWatch is shutting down...")


if __name__ == "__main__":
    logger.info("Starting CityWatch bot...")

    client.load_extensions_from("citywatch/extensions")

    bot.run()
