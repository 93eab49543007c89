import importlib
import time
from pathlib import Path
from typing import List, Tuple

import aiosqlite

from citywatch.utils.logging import get_logger

logger = get_logger(__name__)


class MigrationManager:
    """Applies numbered schema migrations in order."""

    def __init__(self, package: str = "citywatch.database.migrations"):
        self.package = package
        self.migrations_dir = Path(__file__).parent

    def pending(self, current: int) -> List[Tuple[int, str]]:
        """Migrations newer than `current`, oldest first"""
        migrations = []
        for file in sorted(self.migrations_dir.glob("*.py")):
            if file.name.startswith("_"):
                continue
            version = int(file.stem.split("_")[0])
            if version > current:
                migrations.append((version, file.stem))
        return migrations

    async def apply(self, db: aiosqlite.Connection) -> int:
        """Run all pending migrations on an open connection, returning the new version"""
        current = await self.current_version(db)

        for version, name in self.pending(current):
            logger.info(f"Running migration {version}: {name}")

            module = importlib.import_module(f"{self.package}.{name}")
            await module.upgrade(db)

            await db.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, int(time.time())),
            )
            await db.commit()
            current = version

        return current

    async def current_version(self, db: aiosqlite.Connection) -> int:
        try:
            async with db.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            ) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0
        except aiosqlite.OperationalError:
            # Table doesn't exist, version 0
            return 0
