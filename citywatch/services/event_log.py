from typing import Any, Dict, Optional

from citywatch.database.repository import Repository
from citywatch.utils.logging import LEVELS, format_meta, get_logger

logger = get_logger("citywatch.automod")


class EventLog:
    """Durable trace of automod decisions.

    Every record goes to the process log; when a repository is attached it is
    also stored in `bot_logs` so moderators can review it later.
    """

    def __init__(self, repository: Optional[Repository] = None, guild_id: Optional[int] = None):
        self.repo = repository
        self.guild_id = guild_id

    async def log(
        self, level: str, event: str, message: str, meta: Optional[Dict[str, Any]] = None
    ) -> None:
        meta = meta or {}
        line = f"{event}: {message}"
        if meta:
            line = f"{line} ({format_meta(meta)})"
        logger.log(LEVELS.get(level, LEVELS["info"]), line)

        if self.repo is None or self.repo.connection is None:
            return

        try:
            await self.repo.record_event(self.guild_id, level, event, message, meta)
        except Exception as e:
            logger.error(f"Failed to persist log record {event}: {e}", exc_info=True)

    async def info(self, event: str, message: str, **meta: Any) -> None:
        await self.log("info", event, message, meta)

    async def warn(self, event: str, message: str, **meta: Any) -> None:
        await self.log("warn", event, message, meta)

    async def error(self, event: str, message: str, **meta: Any) -> None:
        await self.log("error", event, message, meta)
