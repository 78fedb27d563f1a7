"""Per-key cache of (value, digest) pairs with throttled re-verification.

Each key remembers the digest its value was built from and when that digest
was last verified. Inside the throttle window reads are free; past it, one
digest call decides whether the value is still current.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from agentcase.foundation.errors import JsonDict, StaleDataError
from agentcase.runtime.observability.logging import get_logger

from .digest import Digest
from .ttl import Clock, TtlCache

T = TypeVar("T")

log = get_logger("agentcase.cache.verified")


@dataclass(slots=True)
class VerifiedEntry(Generic[T]):
    """Cached value together with the digest that produced it."""
    value: T
    digest: Digest


@dataclass(slots=True)
class ProbeRecord:
    """When a key's digest was last verified, and what it was."""
    last_checked_at: float
    last_known_digest: Digest


async def _never_load(key: str) -> VerifiedEntry[object]:
    raise KeyError(key)


class HashVerifiedCache(Generic[T]):
    """Hash-verified entry cache.

    ``get_with_hash(key, get_current_digest, reload)``:

    1. No cached pair for ``key``: reload (step 4).
    2. Verified less than ``check_period`` ago: return the cached value, no digest call.
    3. Otherwise call ``get_current_digest()`` and record the verification. Equal
       digest returns the cached value; a different one falls through to step 4.
    4. Call ``reload()``, then ``get_current_digest()`` for the digest belonging to the
       fresh value, store both, record the verification, return the value.

    A digest failure in step 3 is logged and the cached value is served without
    recording a verification, so the next call tries again. Failures in step 4
    propagate and nothing is stored.

    Args:
        name: Label for logs
        ttl: Lifetime of a stored pair (safety net independent of digests)
        check_period: Throttle window between two verifications of one key
        max_check_failures: Consecutive digest failures per key before reads raise
            StaleDataError; None serves the cached value indefinitely
        clock: Monotonic time source
    """

    __slots__ = ("_name", "_check_period", "_max_failures", "_clock", "_store", "_verified", "_failures", "_log")

    def __init__(
        self,
        *,
        name: str,
        ttl: float = 3600.0,
        check_period: float = 600.0,
        max_check_failures: int | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._name = name
        self._check_period = check_period
        self._max_failures = max_check_failures
        self._clock = clock
        self._store: TtlCache[VerifiedEntry[T]] = TtlCache(
            _never_load,  # type: ignore[arg-type]
            ttl=ttl,
            check_period=check_period,
            cache_name=f"{name}:Entries",
            enable_logging=False,
            clock=clock,
        )
        self._verified: dict[str, ProbeRecord] = {}
        self._failures: dict[str, int] = {}
        self._log = log.bind_cache(name)

    @property
    def name(self) -> str:
        return self._name

    async def get_with_hash(
        self,
        key: str,
        get_current_digest: Callable[[], Awaitable[Digest]],
        reload: Callable[[], Awaitable[T]],
    ) -> T:
        self._store.start()
        entry = self._store.peek(key)
        if entry is not None:
            now = self._clock()
            probe = self._verified.get(key)
            if probe is not None and now - probe.last_checked_at < self._check_period:
                self._log.debug("cache hit", key=key, verified_ago=round(now - probe.last_checked_at, 1))
                return entry.value

            try:
                current = await get_current_digest()
            except Exception as e:
                failures = self._failures[key] = self._failures.get(key, 0) + 1
                self._log.error("digest check failed, serving cached value", key=key, error=str(e),
                                consecutive_failures=failures)
                if self._max_failures is not None and failures >= self._max_failures:
                    raise StaleDataError.create(self._name, f"'{key}': {failures} consecutive digest checks failed") from e
                return entry.value

            self._failures.pop(key, None)
            self._verified[key] = ProbeRecord(last_checked_at=now, last_known_digest=current)
            if current == entry.digest:
                self._log.debug("cache hit (hash verified)", key=key)
                return entry.value
            self._log.debug("cache invalidated (hash changed)", key=key)
        else:
            self._log.debug("cache miss", key=key)

        value = await reload()
        digest = await get_current_digest()
        self.set_with_hash(key, value, digest)
        self._log.debug("loaded and cached", key=key)
        return value

    def set_with_hash(self, key: str, value: T, digest: Digest) -> None:
        self._store.set(key, VerifiedEntry(value=value, digest=digest))
        self._verified[key] = ProbeRecord(last_checked_at=self._clock(), last_known_digest=digest)
        self._failures.pop(key, None)

    def peek(self, key: str) -> VerifiedEntry[T] | None:
        return self._store.peek(key)

    def last_verified(self, key: str) -> ProbeRecord | None:
        return self._verified.get(key)

    def invalidate(self, key: str) -> bool:
        self._verified.pop(key, None)
        self._failures.pop(key, None)
        return self._store.clear(key) > 0

    def invalidate_many(self, keys: Iterable[str]) -> int:
        return sum(self.invalidate(k) for k in keys)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns count removed."""
        return self.invalidate_many([k for k in self._store.get_keys() if k.startswith(prefix)])

    def keys(self) -> list[str]:
        return self._store.get_keys()

    def clear(self) -> None:
        self._store.clear_all()
        self._verified.clear()
        self._failures.clear()

    def stats(self) -> JsonDict:
        keys = self.keys()
        return {
            "name": self._name,
            "key_count": len(keys),
            "keys": keys,
            "check_period": self._check_period,
            "failing_keys": sorted(self._failures),
        }

    def shutdown(self) -> None:
        self._store.destroy()
        self._verified.clear()
        self._failures.clear()
