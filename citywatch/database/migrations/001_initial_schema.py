from pathlib import Path

import aiosqlite

SCHEMA_FILE = Path(__file__).resolve().parent.parent / "schema.sql"
TABLES = ("bot_settings", "bot_logs")


async def upgrade(db: aiosqlite.Connection) -> None:
    """Create the settings document table and the automod log table"""
    if not SCHEMA_FILE.is_file():
        raise FileNotFoundError(f"Schema file not found at {SCHEMA_FILE}")

    await db.executescript(SCHEMA_FILE.read_text(encoding="utf-8"))
    await db.commit()


async def downgrade(db: aiosqlite.Connection) -> None:
    for table in TABLES:
        await db.execute(f"DROP TABLE IF EXISTS {table}")

    await db.commit()
