import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from citywatch.core.constants import DATABASE_CONFIG
from citywatch.database.migrations import MigrationManager
from citywatch.utils.errors import DatabaseError
from citywatch.utils.logging import get_logger

logger = get_logger(__name__)


class Repository:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or DATABASE_CONFIG.DEFAULT_PATH
        self.connection: Optional[aiosqlite.Connection] = None

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def init(self) -> None:
        """Initialise the database connection and run migrations"""
        self.connection = await aiosqlite.connect(self.db_path, timeout=DATABASE_CONFIG.TIMEOUT)
        self.connection.row_factory = aiosqlite.Row

        version = await MigrationManager().apply(self.connection)

        logger.info(f"Database initialised and connected (schema version {version}).")

    async def close(self) -> None:
        """Close the database connection"""
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Database connection closed.")

    def _require_connection(self) -> aiosqlite.Connection:
        if not self.connection:
            raise DatabaseError("Database connection is not initialised.")
        return self.connection

    async def get_settings_document(self, guild_id: int) -> Optional[Dict[str, Any]]:
        """Get the raw settings document for a guild, or None if it was never stored"""
        connection = self._require_connection()

        async with connection.execute(
            "SELECT document FROM bot_settings WHERE guild_id = ?", (guild_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            return None

        try:
            document = json.loads(row["document"])
        except json.JSONDecodeError as e:
            raise DatabaseError(f"Settings document for guild {guild_id} is not valid JSON") from e

        if not isinstance(document, dict):
            raise DatabaseError(f"Settings document for guild {guild_id} is not an object")

        return document

    async def ensure_settings_document(self, guild_id: int, defaults: Dict[str, Any]) -> None:
        """Store `defaults` for a guild unless a document already exists"""
        connection = self._require_connection()
        now = int(time.time())

        await connection.execute(
            """INSERT INTO bot_settings (guild_id, document, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO NOTHING""",
            (guild_id, json.dumps(defaults), now, now),
        )
        await connection.commit()

    async def update_settings_document(self, guild_id: int, **fields: Any) -> None:
        """Merge `fields` into the stored settings document of a guild"""
        if not fields:
            return

        document = await self.get_settings_document(guild_id) or {}
        document.update(fields)

        connection = self._require_connection()
        now = int(time.time())

        await connection.execute(
            """INSERT INTO bot_settings (guild_id, document, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
            document = excluded.document,
            updated_at = excluded.updated_at""",
            (guild_id, json.dumps(document), now, now),
        )
        await connection.commit()

    async def record_event(
        self,
        guild_id: Optional[int],
        level: str,
        event: str,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append one structured log record"""
        connection = self._require_connection()

        await connection.execute(
            """INSERT INTO bot_logs (guild_id, level, event, message, meta, created_at)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (
                guild_id,
                level,
                event,
                message,
                json.dumps(meta, default=str) if meta else None,
                int(time.time()),
            ),
        )
        await connection.commit()

    async def get_recent_events(self, guild_id: int, limit: int = 10) -> List[dict]:
        """Get the most recent log records for a guild, newest first"""
        connection = self._require_connection()

        async with connection.execute(
            """SELECT level, event, message, meta, created_at FROM bot_logs
            WHERE guild_id = ?
            ORDER BY id DESC LIMIT ?""",
            (guild_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()

        events = []
        for row in rows:
            record = dict(row)
            record["meta"] = json.loads(record["meta"]) if record["meta"] else {}
            events.append(record)
        return events

    async def cleanup_old_events(self, days: int = 30) -> int:
        """Remove log records older than specified days"""
        connection = self._require_connection()

        cutoff = int(time.time()) - (days * 86400)

        cursor = await connection.execute("DELETE FROM bot_logs WHERE created_at < ?", (cutoff,))
        await connection.commit()

        return cursor.rowcount
