"""Tests for the SQLite-backed TTL cache."""

import pytest

from caput.core.cache import CacheStore


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def store(tmp_path, clock):
    s = CacheStore(tmp_path / "cache.db", clock=clock)
    await s.start()
    yield s
    await s.stop()


class TestCacheStore:
    async def test_set_get(self, store):
        await store.set("k", {"a": [1, 2]})
        assert await store.get("k") == {"a": [1, 2]}

    async def test_missing_key(self, store):
        assert await store.get("nope") is None

    async def test_upsert_replaces(self, store):
        await store.set("k", "one")
        await store.set("k", "two")
        assert await store.get("k") == "two"

    async def test_expired_read_returns_none_and_deletes(self, store, clock):
        await store.set("k", "v", ttl_minutes=1)
        clock.now += 61
        assert await store.get("k") is None
        # Lazily removed, so deleting again finds nothing
        assert await store.delete("k") is False

    async def test_not_yet_expired(self, store, clock):
        await store.set("k", "v", ttl_minutes=1)
        clock.now += 59
        assert await store.get("k") == "v"

    async def test_delete(self, store):
        await store.set("k", "v")
        assert await store.delete("k") is True
        assert await store.get("k") is None

    async def test_cleanup_expired(self, store, clock):
        await store.set("short", 1, ttl_minutes=1)
        await store.set("long", 2, ttl_minutes=60)
        clock.now += 120
        removed = await store.cleanup_expired()
        assert removed == 1
        assert await store.get("long") == 2

    async def test_persists_across_reopen(self, tmp_path, clock):
        path = tmp_path / "cache.db"
        first = CacheStore(path, clock=clock)
        await first.start()
        await first.set("k", ["x"])
        await first.stop()

        second = CacheStore(path, clock=clock)
        await second.start()
        assert await second.get("k") == ["x"]
        await second.stop()

    async def test_sweeper_starts_and_stops(self, store):
        store.start_sweeper()
        await store.stop()
