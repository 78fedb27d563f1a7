"""Two-tier cache that only refetches when a cheap probe reports a change.

The probe tier caches the result of a change detector for a short interval;
the data tier holds fetched values for a long one. A positive probe evicts the
data entry so the following read refetches.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable
from typing import Callable, Generic, TypeVar

from agentcase.foundation.errors import JsonDict
from agentcase.runtime.observability.logging import get_logger

from .ttl import Clock, Loader, TtlCache

T = TypeVar("T")

ChangeDetector = Callable[[str], Awaitable[bool]]

log = get_logger("agentcase.cache.gated")


class ChangeGatedCache(Generic[T]):
    """Cache that decouples "has it changed" from "fetch fresh data".

    Detector failures are logged and treated as "no change", so an outage of
    the store keeps serving the last fetched value instead of raising.

    Args:
        fetcher: Async callable producing the value for a key
        change_detector: Async callable returning True when the key changed
        check_interval: Probe TTL in seconds (how often the detector runs per key)
        data_ttl: Data TTL in seconds; must be longer than ``check_interval``
        cache_name: Label for logs; tiers are named ``<name>:Data`` and ``<name>:ChangeCheck``
        enable_logging: Log data-tier events (probe-tier events are never logged)

    Example:
        >>> servers = ChangeGatedCache(load_servers, change_detector=servers_changed,
        ...                            check_interval=300, data_ttl=86400)
        >>> await servers.get("mcp-servers")
    """

    __slots__ = ("_fetcher", "_detector", "_name", "_logging", "_data", "_probe", "_log")

    def __init__(
        self,
        fetcher: Loader[T],
        *,
        change_detector: ChangeDetector,
        check_interval: float = 10.0,
        data_ttl: float = 3600.0,
        cache_name: str = "ChangeGatedCache",
        enable_logging: bool = True,
        sweep_period: float = 120.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if check_interval >= data_ttl:
            raise ValueError(
                f"check_interval ({check_interval}s) must be shorter than data_ttl ({data_ttl}s)"
            )
        self._fetcher = fetcher
        self._detector = change_detector
        self._name = cache_name
        self._logging = enable_logging
        self._log = log.bind_cache(cache_name)
        self._data: TtlCache[T] = TtlCache(
            self._fetch,
            ttl=data_ttl,
            cache_name=f"{cache_name}:Data",
            enable_logging=enable_logging,
            check_period=sweep_period,
            clock=clock,
        )
        self._probe: TtlCache[bool] = TtlCache(
            self._check,
            ttl=check_interval,
            cache_name=f"{cache_name}:ChangeCheck",
            enable_logging=False,
            check_period=sweep_period,
            clock=clock,
        )

    async def _fetch(self, key: str) -> T:
        if self._logging:
            self._log.info("fetching fresh data", key=key)
        return await self._fetcher(key)

    async def _check(self, key: str) -> bool:
        try:
            changed = await self._detector(key)
        except Exception as e:
            self._log.error("change detection failed, serving cached data", key=key, error=str(e))
            return False
        if changed:
            self._data.clear(key)
            if self._logging:
                self._log.info("change detected, invalidated data cache", key=key)
        return changed

    async def get(self, key: str) -> T:
        """Return data for ``key``, refetching only after a detected change."""
        await self._probe.get(key)
        return await self._data.get(key)

    def invalidate(self, key: str) -> None:
        """Evict both tiers for ``key``."""
        self._data.clear(key)
        self._probe.clear(key)
        if self._logging:
            self._log.info("manually invalidated", key=key)

    async def force_refresh(self, key: str) -> T:
        self.invalidate(key)
        return await self.get(key)

    def clear_all(self) -> None:
        self._data.clear_all()
        self._probe.clear_all()
        if self._logging:
            self._log.info("cleared all caches")

    def has(self, key: str) -> bool:
        return self._data.has(key)

    def set(self, key: str, value: T) -> None:
        self._data.set(key, value)

    def stats(self) -> JsonDict:
        return {
            "cache_name": self._name,
            "data_cache": self._data.stats(),
            "change_check_cache": self._probe.stats(),
        }

    def destroy(self) -> None:
        self._data.destroy()
        self._probe.destroy()
