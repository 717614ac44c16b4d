"""
Durable key-value storage for the medal tally.
"""

from typing import Optional

import aiosqlite

from .exceptions import PersistFailure
from .logger import get_logger

log = get_logger("medal_tally.storage")


class DurableStorage:
    """Key-value slots kept in a local SQLite database."""

    def __init__(
        self,
        db_path: str,
    ) -> None:
        self.db_path = db_path

    async def init_db(self) -> None:
        """
        Initialize the SQLite database.

        Creates the key-value table if it does not exist yet.
        """
        async with aiosqlite.connect(self.db_path) as db:
            # WAL lets a reader process poll while the writer commits
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await db.commit()

    async def get_item(
        self,
        key: str,
    ) -> Optional[str]:
        """
        Read a slot.

        @param key: Slot name
        @return: Stored text, None if the slot is empty
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set_item(
        self,
        key: str,
        value: str,
    ) -> None:
        """
        Write a slot, replacing any previous value.

        @param key: Slot name
        @param value: Text to store
        @raise PersistFailure: If the database rejects the write
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT INTO kv_store (key, value, updated_at) "
                    "VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET "
                    "value = excluded.value, updated_at = excluded.updated_at",
                    (key, value),
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise PersistFailure("Could not write durable slot", {"key": key, "error": str(e)}) from e

        log.debug(f"Wrote {len(value)} bytes to slot {key}")
