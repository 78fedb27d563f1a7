"""Tests for the hash-verified per-key cache."""

import pytest

from agentcase.cache import HashVerifiedCache
from agentcase.foundation.errors import StaleDataError
from agentcase.foundation.testing import FakeClock


class DigestFn:
    def __init__(self, value: str) -> None:
        self.value = value
        self.calls = 0
        self.fail = False

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise ConnectionError("store down")
        return self.value


class Reload:
    def __init__(self, value: str) -> None:
        self.value = value
        self.calls = 0
        self.fail = False

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise ConnectionError("store down")
        return self.value


@pytest.mark.asyncio
async def test_verification_throttle_and_reload_on_new_digest() -> None:
    """throttle=10: load at t=0, no digest call at t=5, reload on digest d2 at t=11."""
    clock = FakeClock()
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", check_period=10, clock=clock)
    digest, reload = DigestFn("d1"), Reload("model-X")

    assert await cache.get_with_hash("m", digest, reload) == "model-X"
    assert (reload.calls, digest.calls) == (1, 1)

    clock.set(5)
    assert await cache.get_with_hash("m", digest, reload) == "model-X"
    assert digest.calls == 1

    clock.set(11)
    digest.value, reload.value = "d2", "model-Y"
    assert await cache.get_with_hash("m", digest, reload) == "model-Y"
    assert reload.calls == 2
    entry = cache.peek("m")
    assert entry is not None
    assert (entry.value, entry.digest) == ("model-Y", "d2")
    cache.shutdown()


@pytest.mark.asyncio
async def test_one_digest_call_per_window() -> None:
    clock = FakeClock()
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", check_period=10, clock=clock)
    digest, reload = DigestFn("d1"), Reload("v")
    await cache.get_with_hash("m", digest, reload)
    baseline = digest.calls

    for t in range(1, 10):
        clock.set(t)
        await cache.get_with_hash("m", digest, reload)
    assert digest.calls == baseline

    clock.set(10)
    await cache.get_with_hash("m", digest, reload)
    await cache.get_with_hash("m", digest, reload)
    assert digest.calls == baseline + 1
    assert reload.calls == 1

    record = cache.last_verified("m")
    assert record is not None
    assert (record.last_checked_at, record.last_known_digest) == (10, "d1")
    cache.shutdown()


@pytest.mark.asyncio
async def test_digest_failure_serves_cached_and_retries_every_call() -> None:
    clock = FakeClock()
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", check_period=10, clock=clock)
    digest, reload = DigestFn("d1"), Reload("v1")
    await cache.get_with_hash("m", digest, reload)

    digest.fail = True
    clock.set(11)
    assert await cache.get_with_hash("m", digest, reload) == "v1"
    clock.set(12)
    assert await cache.get_with_hash("m", digest, reload) == "v1"
    assert digest.calls == 3

    digest.fail = False
    clock.set(13)
    await cache.get_with_hash("m", digest, reload)
    clock.set(14)
    await cache.get_with_hash("m", digest, reload)
    assert digest.calls == 4
    assert reload.calls == 1
    cache.shutdown()


@pytest.mark.asyncio
async def test_repeated_digest_failures_escalate() -> None:
    clock = FakeClock()
    cache: HashVerifiedCache[str] = HashVerifiedCache(
        name="Test", check_period=10, max_check_failures=2, clock=clock,
    )
    digest, reload = DigestFn("d1"), Reload("v1")
    await cache.get_with_hash("m", digest, reload)

    digest.fail = True
    clock.set(11)
    assert await cache.get_with_hash("m", digest, reload) == "v1"
    with pytest.raises(StaleDataError):
        await cache.get_with_hash("m", digest, reload)
    assert cache.stats()["failing_keys"] == ["m"]

    digest.fail = False
    assert await cache.get_with_hash("m", digest, reload) == "v1"
    assert cache.stats()["failing_keys"] == []
    cache.shutdown()


@pytest.mark.asyncio
async def test_reload_failure_propagates_and_stores_nothing() -> None:
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", clock=FakeClock())
    reload = Reload("v")
    reload.fail = True

    with pytest.raises(ConnectionError):
        await cache.get_with_hash("m", DigestFn("d1"), reload)
    assert cache.keys() == []
    cache.shutdown()


@pytest.mark.asyncio
async def test_entry_ttl_forces_reload() -> None:
    clock = FakeClock()
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", ttl=30, check_period=10, clock=clock)
    digest, reload = DigestFn("d1"), Reload("v")
    await cache.get_with_hash("m", digest, reload)

    clock.set(31)
    await cache.get_with_hash("m", digest, reload)
    assert reload.calls == 2
    cache.shutdown()


def test_invalidation_by_key_and_prefix() -> None:
    cache: HashVerifiedCache[str] = HashVerifiedCache(name="Test", clock=FakeClock())
    cache.set_with_hash("model:a1", "m", "d")
    cache.set_with_hash("tools:a1", "t", "d")
    cache.set_with_hash("model:a2", "m", "d")

    assert cache.invalidate_prefix("model:") == 2
    assert cache.keys() == ["tools:a1"]
    assert cache.last_verified("model:a1") is None

    assert cache.invalidate("tools:a1")
    assert not cache.invalidate("tools:a1")

    cache.set_with_hash("x", "v", "d")
    cache.clear()
    assert cache.stats()["key_count"] == 0
    cache.shutdown()
