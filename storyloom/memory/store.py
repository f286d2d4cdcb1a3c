"""MemoryStore: per-character memory logs in SQLite.

Each character owns one row holding a JSON array of memory records, the
same key-scoped shape browser clients persisted. Corrupt rows read as an
empty log so retrieval degrades instead of failing the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite
from pydantic import ValidationError

from storyloom.config import settings
from storyloom.memory.models import MemoryRecord, MemoryType, normalize_type

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS memory_logs (
    character_id TEXT PRIMARY KEY,
    records TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL
)
"""


def make_memory_id() -> str:
    return uuid.uuid4().hex


class MemoryStore:
    """Persists character memories in SQLite.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Mutations of one character's log are serialised through a per-character
    lock, so concurrent ``add`` calls in this process cannot drop each other's
    records.  Writers in other processes are not coordinated.
    """

    _instance: MemoryStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def _read_raw(self, db: aiosqlite.Connection, character_id: str) -> str | None:
        cursor = await db.execute(
            "SELECT records FROM memory_logs WHERE character_id = ?", (character_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def _write(
        self, db: aiosqlite.Connection, character_id: str, records: list[MemoryRecord]
    ) -> None:
        payload = json.dumps([r.to_wire() for r in records])
        await db.execute(
            """
            INSERT INTO memory_logs (character_id, records, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(character_id) DO UPDATE SET
                records = excluded.records,
                updated_at = excluded.updated_at
            """,
            (character_id, payload, datetime.now(UTC).isoformat()),
        )
        await db.commit()

    # -- Write ---------------------------------------------------------------

    async def add(
        self,
        character_id: str,
        content: str,
        type: MemoryType | str = MemoryType.CONVERSATION,  # noqa: A002
        importance: int = 5,
    ) -> MemoryRecord:
        """Append a memory to a character's log and return it."""
        if not 1 <= importance <= 10:
            msg = f"importance must be between 1 and 10, got {importance}"
            raise ValueError(msg)

        record = MemoryRecord(
            id=make_memory_id(),
            character_id=character_id,
            content=str(content),
            type=normalize_type(type),
            importance=importance,
            timestamp=datetime.now(UTC).isoformat(),
        )

        async with self._locks[character_id]:
            db = await self._connect()
            try:
                records = parse_records(await self._read_raw(db, character_id), character_id)
                records.append(record)
                await self._write(db, character_id, records)
            finally:
                await db.close()

        logger.debug(
            "Stored memory for %s [%s/%d]: %s",
            character_id,
            record.type,
            record.importance,
            record.content[:80],
        )
        return record

    # -- Read ----------------------------------------------------------------

    async def list(self, character_id: str) -> list[MemoryRecord]:  # noqa: A003
        """Return every memory for a character in insertion order."""
        db = await self._connect()
        try:
            raw = await self._read_raw(db, character_id)
        finally:
            await db.close()
        return parse_records(raw, character_id)

    # -- Delete --------------------------------------------------------------

    async def delete(self, character_id: str, memory_id: str) -> bool:
        """Delete one memory. Returns True if a record was removed."""
        async with self._locks[character_id]:
            db = await self._connect()
            try:
                records = parse_records(await self._read_raw(db, character_id), character_id)
                kept = [r for r in records if r.id != str(memory_id)]
                if len(kept) == len(records):
                    return False
                await self._write(db, character_id, kept)
            finally:
                await db.close()

        logger.info("Deleted memory %s for %s", memory_id, character_id)
        return True

    async def delete_all(self, character_id: str) -> int:
        """Drop a character's whole log (character deletion). Returns the count removed."""
        async with self._locks[character_id]:
            db = await self._connect()
            try:
                count = len(parse_records(await self._read_raw(db, character_id), character_id))
                await db.execute(
                    "DELETE FROM memory_logs WHERE character_id = ?", (character_id,)
                )
                await db.commit()
            finally:
                await db.close()

        logger.info("Deleted %d memories for %s", count, character_id)
        return count


def parse_records(raw: str | None, character_id: str) -> list[MemoryRecord]:
    """Decode a stored JSON array into records.

    Unparseable JSON or a non-list payload is treated as an empty log.
    Individual entries that fail validation are skipped.
    """
    if raw is None:
        return []

    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Memory log for %s is not valid JSON, treating as empty", character_id)
        return []

    if not isinstance(data, list):
        logger.warning(
            "Memory log for %s is a %s, not a list; treating as empty",
            character_id,
            type(data).__name__,
        )
        return []

    records: list[MemoryRecord] = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object memory entry for %s", character_id)
            continue
        if not item.get("characterId") and not item.get("character_id"):
            item = {**item, "characterId": character_id}
        try:
            records.append(MemoryRecord.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed memory entry for %s: %r", character_id, item)
    return records
