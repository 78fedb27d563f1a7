"""Tests for the single-key TTL cache."""

import asyncio

import pytest

from agentcase.cache import CacheEvent, TtlCache
from agentcase.foundation.testing import FakeClock
from agentcase.runtime.observability.logging import ListRenderer, configure_logging


class CountingLoader:
    """Loader returning '<key>-v<n>' for the n-th call."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def __call__(self, key: str) -> str:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return f"{key}-v{len(self.calls)}"


@pytest.mark.asyncio
async def test_ttl_expiry_reloads_exactly_once() -> None:
    """ttl=60: load at t=0, hit at t=30, reload at t=61."""
    clock, loader = FakeClock(), CountingLoader()
    cache = TtlCache(loader, ttl=60, check_period=0, clock=clock)

    assert await cache.get("x") == "x-v1"
    clock.set(30)
    assert await cache.get("x") == "x-v1"
    assert loader.calls == ["x"]

    clock.set(61)
    assert await cache.get("x") == "x-v2"
    assert loader.calls == ["x", "x"]
    cache.destroy()


@pytest.mark.asyncio
async def test_hits_never_call_loader() -> None:
    clock, loader = FakeClock(), CountingLoader()
    cache = TtlCache(loader, ttl=60, check_period=0, clock=clock)

    await cache.get("a")
    for t in range(1, 60):
        clock.set(t)
        assert await cache.get("a") == "a-v1"

    assert len(loader.calls) == 1
    stats = cache.stats()
    assert stats["hits"] == 59
    assert stats["misses"] == 1
    cache.destroy()


@pytest.mark.asyncio
async def test_loader_failure_propagates_and_is_not_cached() -> None:
    loader = CountingLoader()
    loader.fail_with = ConnectionError("store down")
    cache = TtlCache(loader, check_period=0, clock=FakeClock())

    with pytest.raises(ConnectionError):
        await cache.get("x")
    assert not cache.has("x")

    loader.fail_with = None
    assert await cache.get("x") == "x-v2"
    assert len(loader.calls) == 2
    cache.destroy()


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_load() -> None:
    loader = CountingLoader()
    loader.gate = asyncio.Event()
    cache = TtlCache(loader, check_period=0, clock=FakeClock())

    tasks = [asyncio.create_task(cache.get("k")) for _ in range(5)]
    await asyncio.sleep(0)
    loader.gate.set()
    results = await asyncio.gather(*tasks)

    assert results == ["k-v1"] * 5
    assert loader.calls == ["k"]
    assert cache.stats()["in_flight"] == 0
    cache.destroy()


@pytest.mark.asyncio
async def test_concurrent_misses_share_failure() -> None:
    loader = CountingLoader()
    loader.gate = asyncio.Event()
    loader.fail_with = TimeoutError("slow store")
    cache = TtlCache(loader, check_period=0, clock=FakeClock())

    tasks = [asyncio.create_task(cache.get("k")) for _ in range(3)]
    await asyncio.sleep(0)
    loader.gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(r, TimeoutError) for r in results)
    assert loader.calls == ["k"]
    assert cache.get_keys() == []
    cache.destroy()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_load() -> None:
    loader = CountingLoader()
    loader.gate = asyncio.Event()
    cache = TtlCache(loader, check_period=0, clock=FakeClock())

    first = asyncio.create_task(cache.get("k"))
    second = asyncio.create_task(cache.get("k"))
    await asyncio.sleep(0)
    first.cancel()
    loader.gate.set()

    assert await second == "k-v1"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert loader.calls == ["k"]
    assert cache.stats()["in_flight"] == 0
    cache.destroy()


@pytest.mark.asyncio
async def test_single_flight_can_be_disabled() -> None:
    loader = CountingLoader()
    loader.gate = asyncio.Event()
    cache = TtlCache(loader, check_period=0, single_flight=False, clock=FakeClock())

    tasks = [asyncio.create_task(cache.get("k")) for _ in range(3)]
    await asyncio.sleep(0)
    loader.gate.set()
    await asyncio.gather(*tasks)

    assert len(loader.calls) == 3
    cache.destroy()


def test_events_delivered_to_subscribers() -> None:
    clock = FakeClock()
    cache = TtlCache(CountingLoader(), ttl=60, check_period=0, clock=clock)
    events: list[tuple[CacheEvent, str]] = []
    unsubscribe = cache.subscribe(lambda event, key: events.append((event, key)))

    cache.set("a", 1)
    cache.set("b", 2, ttl=5)
    assert cache.clear("a") == 1
    assert cache.clear("a") == 0
    clock.advance(6)
    assert cache.prune() == 1
    cache.clear_all()

    assert events == [
        (CacheEvent.SET, "a"),
        (CacheEvent.SET, "b"),
        (CacheEvent.DELETE, "a"),
        (CacheEvent.EXPIRED, "b"),
        (CacheEvent.FLUSH, "*"),
    ]

    unsubscribe()
    cache.set("c", 3)
    assert len(events) == 5
    cache.destroy()


def test_lazy_expiry_on_read() -> None:
    clock = FakeClock()
    cache = TtlCache(CountingLoader(), ttl=10, check_period=0, clock=clock)
    cache.set("a", 1)

    clock.set(4)
    assert cache.get_ttl("a") == 6
    assert cache.get_keys() == ["a"]
    assert cache.export() == {"a": 1}
    assert cache.peek("a") == 1

    clock.set(10)
    assert not cache.has("a")
    assert cache.peek("a") is None
    assert cache.get_ttl("a") == 0
    assert cache.size == 0
    cache.destroy()


@pytest.mark.asyncio
async def test_refresh_reloads_key() -> None:
    loader = CountingLoader()
    cache = TtlCache(loader, check_period=0, clock=FakeClock())

    assert await cache.get("x") == "x-v1"
    assert await cache.refresh("x") == "x-v2"
    assert await cache.get("x") == "x-v2"
    cache.destroy()


@pytest.mark.asyncio
async def test_sweep_prunes_expired_entries() -> None:
    cache = TtlCache(CountingLoader(), ttl=0.01, check_period=0.01)

    await cache.get("x")
    await asyncio.sleep(0.05)

    assert cache.size == 0
    cache.destroy()


@pytest.mark.asyncio
async def test_destroy_is_idempotent() -> None:
    cache = TtlCache(CountingLoader(), check_period=0.01)
    await cache.get("x")

    cache.destroy()
    cache.destroy()

    assert cache.destroyed
    assert cache.size == 0
    assert cache.stats()["key_count"] == 0


def test_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        TtlCache(CountingLoader(), ttl=0)


def test_set_rejects_non_positive_ttl() -> None:
    clock = FakeClock()
    cache = TtlCache(CountingLoader(), ttl=60, check_period=0, clock=clock)

    with pytest.raises(ValueError):
        cache.set("a", 1, ttl=0)
    assert not cache.has("a")

    cache.set("a", 1, ttl=5)
    assert cache.get_ttl("a") == 5
    cache.destroy()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_reads() -> None:
    renderer = ListRenderer()
    configure_logging(renderer=renderer, level="INFO")
    cache = TtlCache(CountingLoader(), check_period=0, clock=FakeClock())
    seen: list[CacheEvent] = []

    def broken(event: CacheEvent, key: str) -> None:
        raise RuntimeError("listener bug")

    cache.subscribe(broken)
    cache.subscribe(lambda event, key: seen.append(event))

    assert await cache.get("x") == "x-v1"
    assert CacheEvent.SET in seen
    assert any(e.event == "cache listener failed" for e in renderer.entries)
    cache.destroy()
