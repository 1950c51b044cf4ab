"""Key/value cache with per-item TTL, backed by SQLite."""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Callable

import aiosqlite

from caput.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires REAL NOT NULL,
    created REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS cache_expires ON cache (expires);
"""

Clock = Callable[[], float]


class CacheStore:
    """Upsert/get/delete with absolute expiry computed at write time.

    Expired records are removed lazily on read and by a periodic sweep
    started with :meth:`start_sweeper`.
    """

    def __init__(
        self,
        db_path: Path | str,
        sweep_interval: float = 30 * 60,
        clock: Clock = time.time,
    ) -> None:
        self._db_path = Path(db_path) if db_path != ":memory:" else db_path
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._sweep_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if isinstance(self._db_path, Path):
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def stop(self) -> None:
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
        self._sweep_task = None
        if self._db:
            await self._db.close()
            self._db = None

    def start_sweeper(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="cache-sweep")

    async def set(self, key: str, value: Any, ttl_minutes: float = 60) -> None:
        assert self._db is not None
        now = self._clock()
        expires = now + ttl_minutes * 60
        await self._db.execute(
            "INSERT INTO cache (key, value, expires, created) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET "
            "value = excluded.value, expires = excluded.expires, created = excluded.created",
            (key, json.dumps(value, default=str), expires, now),
        )
        await self._db.commit()

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent or expired."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT value, expires FROM cache WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        if self._clock() > row[1]:
            await self.delete(key)
            return None
        return json.loads(row[0])

    async def delete(self, key: str) -> bool:
        assert self._db is not None
        cursor = await self._db.execute("DELETE FROM cache WHERE key = ?", (key,))
        await self._db.commit()
        return cursor.rowcount > 0

    async def cleanup_expired(self) -> int:
        """Delete every expired record. Returns the count removed."""
        assert self._db is not None
        cursor = await self._db.execute(
            "DELETE FROM cache WHERE expires < ?", (self._clock(),)
        )
        await self._db.commit()
        return cursor.rowcount

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                removed = await self.cleanup_expired()
                log.debug("cache_sweep_completed", removed=removed)
            except Exception:
                log.exception("cache_sweep_error")
