"""Single-key TTL cache with fetch-on-miss.

Entries are loaded through an async loader on miss and kept for a fixed
time-to-live. Expiry is checked lazily on every read; a periodic sweep task
prunes expired entries proactively and emits events for observability.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Generic, TypeVar

from agentcase.foundation.errors import JsonDict
from agentcase.runtime.observability.logging import get_logger

T = TypeVar("T")

DEFAULT_TTL: float = 60.0
DEFAULT_CHECK_PERIOD: float = 120.0

Loader = Callable[[str], Awaitable[T]]
Clock = Callable[[], float]

log = get_logger("agentcase.cache")


class CacheEvent(StrEnum):
    """Entry transitions delivered to subscribers."""
    SET = "set"
    DELETE = "delete"
    EXPIRED = "expired"
    FLUSH = "flush"


Listener = Callable[[CacheEvent, str], None]


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    """A cached value with expiration tracking."""
    value: T
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class TtlCache(Generic[T]):
    """In-memory TTL cache that fetches through an async loader on miss.

    Concurrent misses for the same key share one loader call (single-flight)
    unless ``single_flight=False``. Loader failures propagate and nothing is
    cached.

    Args:
        loader: Async callable producing the value for a key
        ttl: Default lifetime in seconds for entries
        check_period: Sweep interval in seconds; ``<= 0`` disables the sweep
        cache_name: Label used in log events
        enable_logging: Emit structured events for set/hit/miss/expire/delete
        single_flight: Deduplicate concurrent loads of the same key
        clock: Monotonic time source (seconds)

    Example:
        >>> cache = TtlCache(fetch_model, ttl=60, cache_name="Models")
        >>> model = await cache.get("gpt-4o")   # loader called
        >>> model = await cache.get("gpt-4o")   # served from memory
        >>> cache.destroy()
    """

    __slots__ = (
        "_loader", "_entries", "_ttl", "_check_period", "_name", "_logging", "_single_flight",
        "_clock", "_in_flight", "_listeners", "_sweeper", "_destroyed", "_hits", "_misses", "_log",
    )

    def __init__(
        self,
        loader: Loader[T],
        *,
        ttl: float = DEFAULT_TTL,
        check_period: float = DEFAULT_CHECK_PERIOD,
        cache_name: str = "TtlCache",
        enable_logging: bool = True,
        single_flight: bool = True,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._loader = loader
        self._entries: dict[str, CacheEntry[T]] = {}
        self._ttl = ttl
        self._check_period = check_period
        self._name = cache_name
        self._logging = enable_logging
        self._single_flight = single_flight
        self._clock = clock
        self._in_flight: dict[str, asyncio.Future[T]] = {}
        self._listeners: list[Listener] = []
        self._sweeper: asyncio.Task[None] | None = None
        self._destroyed = False
        self._hits = 0
        self._misses = 0
        self._log = log.bind_cache(cache_name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl(self) -> float:
        return self._ttl

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def get(self, key: str) -> T:
        """Return the cached value, loading it on miss."""
        self._ensure_sweeper()
        entry = self._live(key)
        if entry is not None:
            self._hits += 1
            if self._logging:
                self._log.debug("cache hit", key=key)
            return entry.value

        self._misses += 1
        if self._single_flight and (pending := self._in_flight.get(key)) is not None:
            return await asyncio.shield(pending)

        if self._logging:
            self._log.debug("cache miss", key=key)
        if not self._single_flight:
            return await self._load(key)

        # no caller owns the load; cancelling a waiter leaves it running for the rest
        task = asyncio.ensure_future(self._load(key))
        self._in_flight[key] = task
        task.add_done_callback(lambda t: self._settle(key, t))
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Future[T]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            task.exception()  # mark retrieved when every waiter was cancelled

    async def _load(self, key: str) -> T:
        try:
            value = await self._loader(key)
        except Exception as e:
            if self._logging:
                self._log.error("cache load failed", key=key, error=str(e))
            raise
        self.set(key, value)
        return value

    async def refresh(self, key: str) -> T:
        """Evict then reload a key."""
        self.clear(key)
        return await self.get(key)

    def peek(self, key: str) -> T | None:
        """Return the live value without loading, or None."""
        entry = self._live(key)
        return entry.value if entry is not None else None

    def has(self, key: str) -> bool:
        return self._live(key) is not None

    def get_ttl(self, key: str) -> float:
        """Remaining lifetime in seconds, 0 if absent."""
        entry = self._live(key)
        return max(entry.expires_at - self._clock(), 0.0) if entry is not None else 0.0

    def get_keys(self) -> list[str]:
        now = self._clock()
        return [k for k, e in self._entries.items() if not e.expired(now)]

    def export(self) -> dict[str, T]:
        """Snapshot of all live entries."""
        now = self._clock()
        return {k: e.value for k, e in self._entries.items() if not e.expired(now)}

    def _live(self, key: str) -> CacheEntry[T] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._emit(CacheEvent.EXPIRED, key)
            return None
        return entry

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    def set(self, key: str, value: T, ttl: float | None = None) -> bool:
        """Store a value with the default or given TTL."""
        if ttl is None:
            ttl = self._ttl
        elif ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self._emit(CacheEvent.SET, key)
        return True

    def clear(self, key: str) -> int:
        """Remove one key. Returns the number of entries removed."""
        if self._entries.pop(key, None) is None:
            return 0
        self._emit(CacheEvent.DELETE, key)
        return 1

    def clear_all(self) -> None:
        self._entries.clear()
        self._emit(CacheEvent.FLUSH, "*")

    def prune(self) -> int:
        """Remove every expired entry. Returns count removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for key in expired:
            del self._entries[key]
            self._emit(CacheEvent.EXPIRED, key)
        return len(expired)

    # ─────────────────────────────────────────────────────────────────
    # Events & lifecycle
    # ─────────────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an event listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: CacheEvent, key: str) -> None:
        if self._logging:
            self._log.info(f"cache {event}", key=key)
        for listener in tuple(self._listeners):
            try:
                listener(event, key)
            except Exception as e:
                self._log.error("cache listener failed", cache_event=str(event), key=key, error=str(e))

    def start(self) -> None:
        """Start the periodic sweep on the running loop. No-op if already running or disabled."""
        self._ensure_sweeper()

    def _ensure_sweeper(self) -> None:
        if self._sweeper is not None or self._destroyed or self._check_period <= 0:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep(), name=f"{self._name}:sweep")

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self._check_period)
            self.prune()

    def destroy(self) -> None:
        """Stop the sweep and drop all entries. Safe to call more than once."""
        if self._destroyed:
            return
        self._destroyed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        self._entries.clear()
        self._in_flight.clear()
        self._listeners.clear()
        if self._logging:
            self._log.info("cache destroyed")

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> JsonDict:
        """Get cache statistics for monitoring."""
        keys = self.get_keys()
        return {
            "cache_name": self._name,
            "hits": self._hits,
            "misses": self._misses,
            "keys": keys,
            "key_count": len(keys),
            "ttl": self._ttl,
            "check_period": self._check_period,
            "in_flight": len(self._in_flight),
        }
