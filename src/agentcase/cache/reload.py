"""Whole-collection cache reloaded when a store digest moves.

A ReloadCache owns one named collection. Reads first run a throttled change
check: inside the check window they are served from memory with no external
call; past it, the digest function is consulted and a differing digest swaps
in a freshly loaded collection.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Mapping
from types import MappingProxyType
from typing import Callable, Generic, TypeVar

from agentcase.foundation.errors import InitializationError, JsonDict, StaleDataError
from agentcase.runtime.observability.logging import get_logger

from .digest import Digest
from .ttl import Clock

T = TypeVar("T")

CollectionLoader = Callable[[], Awaitable[Mapping[str, T]]]
DigestFn = Callable[[], Awaitable[Digest]]
ChangeCallback = Callable[[], Awaitable[None]]

log = get_logger("agentcase.cache.reload")

_EMPTY: Mapping[str, object] = MappingProxyType({})


class ReloadCache(Generic[T]):
    """Collection cache with digest-driven atomic reloads.

    The collection is held as an immutable snapshot that is replaced in a
    single assignment, so a reader holding ``get_all()`` never sees a mix of
    old and new entries. The digest is recorded only after a successful load.

    A failed check (digest or reload) keeps the current snapshot. With
    ``max_check_failures`` set, reads raise StaleDataError once that many
    consecutive checks have failed, until a check succeeds again.

    Args:
        name: Label for logs and errors
        load_data: Async callable returning the full collection
        get_change_hash: Async callable returning the store digest
        ttl: Snapshot age after which the next check reloads regardless of digest
        check_period: Minimum seconds between two digest checks
        max_check_failures: Escalation threshold, None serves stale data indefinitely
        clock: Monotonic time source

    Example:
        >>> models = ReloadCache(name="ModelManager", load_data=load, get_change_hash=digest)
        >>> await models.initialize()
        >>> binding = await models.get("model-1")
    """

    __slots__ = (
        "_name", "_load_data", "_get_change_hash", "_ttl", "_check_period", "_max_failures", "_clock",
        "_items", "_digest", "_last_check", "_loaded_at", "_initialized", "_failures", "_callbacks", "_log",
    )

    def __init__(
        self,
        *,
        name: str,
        load_data: CollectionLoader[T],
        get_change_hash: DigestFn,
        ttl: float = 3600.0,
        check_period: float = 600.0,
        max_check_failures: int | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._name = name
        self._load_data = load_data
        self._get_change_hash = get_change_hash
        self._ttl = ttl
        self._check_period = check_period
        self._max_failures = max_check_failures
        self._clock = clock
        self._items: Mapping[str, T] = _EMPTY  # type: ignore[assignment]
        self._digest: Digest | None = None
        self._last_check: float | None = None
        self._loaded_at: float | None = None
        self._initialized = False
        self._failures = 0
        self._callbacks: list[ChangeCallback] = []
        self._log = log.bind_cache(name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def digest(self) -> Digest | None:
        return self._digest

    def is_ready(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Perform the first load. No-op when already initialized."""
        if self._initialized:
            self._log.debug("already initialized")
            return
        self._log.info("initializing")
        try:
            await self._reload()
        except Exception as e:
            self._log.error("initialization failed", error=str(e))
            raise InitializationError.from_exc(self._name, e, "initial load failed") from e
        self._last_check = self._clock()
        self._initialized = True
        self._log.info("initialized", items=len(self._items))

    async def _reload(self, digest: Digest | None = None) -> None:
        if digest is None:
            digest = await self._get_change_hash()
        data = await self._load_data()
        self._items = MappingProxyType(dict(data))
        self._digest = digest
        self._loaded_at = self._clock()
        self._log.info("loaded", items=len(self._items))

    async def reload(self) -> None:
        """Force a full reload now. Failures propagate; the old snapshot is kept."""
        await self._reload()
        self._last_check = self._clock()
        self._initialized = True
        self._failures = 0
        await self._notify()

    async def check(self) -> bool:
        """Run the throttled change check. Returns True when the collection was swapped."""
        now = self._clock()
        if self._last_check is not None and now - self._last_check < self._check_period:
            self._log.debug("change check throttled", next_check_in=round(self._check_period - (now - self._last_check), 1))
            return False
        self._last_check = now
        try:
            digest = await self._get_change_hash()
            expired = self._loaded_at is not None and now - self._loaded_at >= self._ttl
            if digest == self._digest and not expired:
                self._failures = 0
                self._log.debug("no changes detected")
                return False
            self._log.info("snapshot expired, reloading" if digest == self._digest else "collection changed, reloading")
            await self._reload(digest)
        except Exception as e:
            self._failures += 1
            self._log.error("change check failed", error=str(e), consecutive_failures=self._failures)
            return False
        self._failures = 0
        self._initialized = True
        await self._notify()
        return True

    async def _ensure_fresh(self) -> None:
        await self.check()
        if self._max_failures is not None and self._failures >= self._max_failures:
            raise StaleDataError.create(self._name, f"{self._failures} consecutive change checks failed")

    async def get(self, key: str) -> T | None:
        await self._ensure_fresh()
        value = self._items.get(key)
        self._log.debug("cache hit" if value is not None else "cache miss", key=key)
        return value

    async def get_all(self) -> Mapping[str, T]:
        """Return the current snapshot (read-only, never mutated in place)."""
        await self._ensure_fresh()
        return self._items

    def peek_all(self) -> Mapping[str, T]:
        """Current snapshot without running a change check."""
        return self._items

    # ─────────────────────────────────────────────────────────────────
    # Change notification
    # ─────────────────────────────────────────────────────────────────

    def on_change(self, callback: ChangeCallback) -> None:
        """Register an async callback fired after every successful reload."""
        self._callbacks.append(callback)

    async def _notify(self) -> None:
        for callback in tuple(self._callbacks):
            try:
                await callback()
            except Exception as e:
                self._log.error("change callback failed", error=str(e))

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def shutdown(self) -> None:
        """Release the collection. A later read reloads lazily; change callbacks stay registered."""
        self._items = _EMPTY  # type: ignore[assignment]
        self._digest = None
        self._last_check = None
        self._loaded_at = None
        self._initialized = False
        self._failures = 0
        self._log.info("shut down")

    def stats(self) -> JsonDict:
        return {
            "name": self._name,
            "initialized": self._initialized,
            "item_count": len(self._items),
            "digest": self._digest,
            "consecutive_failures": self._failures,
            "check_period": self._check_period,
        }
