from __future__ import annotations

import asyncio

import pytest

from memory_lane.services.cache import TTLCache


def test_values_expire_after_their_ttl(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)
    cache.set("a", "alpha", ttl=10)

    fake_clock.advance(9)
    assert cache.get("a") == "alpha"
    assert "a" in cache

    fake_clock.advance(1)
    assert cache.get("a") is None
    assert len(cache) == 0


def test_get_or_populate_reuses_fresh_values(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)
    calls = []

    async def factory() -> str:
        calls.append(fake_clock.now)
        return f"value-{len(calls)}"

    async def scenario() -> list:
        first = await cache.get_or_populate("key", factory, ttl=60)
        fake_clock.advance(30)
        second = await cache.get_or_populate("key", factory, ttl=60)
        fake_clock.advance(30)
        third = await cache.get_or_populate("key", factory, ttl=60)
        return [first, second, third]

    assert asyncio.run(scenario()) == ["value-1", "value-1", "value-2"]
    assert len(calls) == 2
    assert cache.expires_at("key") == fake_clock.now + 60


def test_failed_factory_caches_nothing(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)

    async def factory() -> str:
        raise RuntimeError("boom")

    async def scenario() -> None:
        await cache.get_or_populate("key", factory, ttl=60)

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert cache.get("key") is None


def test_invalidate_reports_presence(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)
    cache.set("a", 1, ttl=5)

    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    assert cache.get("a") is None


def test_clear_drops_everything(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)
    cache.set("a", 1, ttl=5)
    cache.set("b", 2, ttl=5)

    cache.clear()

    assert len(cache) == 0


def test_invalidation_during_populate_is_not_cached(fake_clock) -> None:
    cache = TTLCache(clock=fake_clock)

    async def scenario() -> tuple:
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_factory() -> str:
            started.set()
            await release.wait()
            return "stale"

        async def fresh_factory() -> str:
            return "fresh"

        reader = asyncio.create_task(cache.get_or_populate("key", slow_factory, ttl=60))
        await started.wait()
        cache.invalidate("key")
        release.set()
        first = await reader
        second = await cache.get_or_populate("key", fresh_factory, ttl=60)
        return first, second

    assert asyncio.run(scenario()) == ("stale", "fresh")
    assert cache.get("key") == "fresh"
