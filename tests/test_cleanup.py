"""Tests for the background cache sweeper."""

import asyncio

from core.cache import TTLCache
from core.cleanup import CacheSweeper


class TestCacheSweeper:
    def test_run_once_evicts_expired_entries(self):
        now = [0.0]
        cache = TTLCache(default_ttl=10, clock=lambda: now[0])
        cache.set("old", 1)
        cache.set("new", 2, ttl=100)
        now[0] = 20.0

        sweeper = CacheSweeper(cache, interval=60)
        assert sweeper.run_once() == 1
        assert cache.keys() == ["new"]

    async def test_loop_sweeps_until_stopped(self):
        cache = TTLCache(default_ttl=0.01)
        cache.set("k", "v")
        sweeper = CacheSweeper(cache, interval=0.02)

        await sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.1)
        assert len(cache) == 0

        await sweeper.stop()
        assert not sweeper.running

    async def test_start_twice_keeps_one_task(self):
        sweeper = CacheSweeper(TTLCache(), interval=60)
        await sweeper.start()
        task = sweeper._task
        await sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()

    async def test_stop_without_start(self):
        sweeper = CacheSweeper(TTLCache(), interval=60)
        await sweeper.stop()
        assert not sweeper.running
