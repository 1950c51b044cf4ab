"""User preferences that outlive a process, kept in the cache store."""

from __future__ import annotations

from typing import Any

from caput.core.cache import CacheStore
from caput.utils.logging import get_logger

log = get_logger(__name__)

PREFERENCES_KEY = "caput_preferences"

# Ten years; preferences are not meant to expire.
PREFERENCES_TTL_MINUTES = 10 * 365 * 24 * 60


class Preferences:
    def __init__(self, cache: CacheStore) -> None:
        self._cache = cache

    async def load(self) -> dict[str, Any]:
        stored = await self._cache.get(PREFERENCES_KEY)
        return stored if isinstance(stored, dict) else {}

    async def save(self, **values: Any) -> dict[str, Any]:
        """Merge values into the stored preferences and return the result."""
        current = await self.load()
        current.update(values)
        await self._cache.set(PREFERENCES_KEY, current, ttl_minutes=PREFERENCES_TTL_MINUTES)
        log.info("preferences_saved", keys=sorted(values))
        return current
