"""Tool bindings cached as one digest-reloaded collection."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass

from agentcase.cache.digest import Digest, digest_rows
from agentcase.cache.reload import ReloadCache
from agentcase.cache.ttl import Clock
from agentcase.capabilities import CapabilityRegistry
from agentcase.foundation.config import ToolCacheSettings
from agentcase.foundation.errors import JsonDict
from agentcase.runtime.observability.logging import get_logger
from agentcase.store import ConfigStore

from .builtin import Tool, tool_registry

log = get_logger("agentcase.services.tools")


@dataclass(frozen=True, slots=True)
class ToolBinding:
    """A store tool row bound to its implementation."""
    id: str
    name: str
    tool: Tool


class ToolManager:
    """Tool bindings keyed by tool id.

    Rows naming a tool outside the registry are logged and skipped; the rest
    of the collection still loads.
    """

    __slots__ = ("_store", "_registry", "_cache")

    def __init__(
        self,
        store: ConfigStore,
        *,
        registry: CapabilityRegistry[str, Tool] | None = None,
        settings: ToolCacheSettings | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or ToolCacheSettings()
        self._store = store
        self._registry = registry if registry is not None else tool_registry()
        self._cache: ReloadCache[ToolBinding] = ReloadCache(
            name="ToolManager",
            load_data=self._load,
            get_change_hash=self._digest,
            ttl=settings.ttl,
            check_period=settings.check_period,
            max_check_failures=settings.max_check_failures,
            clock=clock,
        )

    async def _load(self) -> dict[str, ToolBinding]:
        bindings: dict[str, ToolBinding] = {}
        for row in await self._store.list_tools():
            if (tool := self._registry.get(row.name)) is None:
                log.warning("tool not found in registry", tool_id=row.id, tool=row.name, known=self._registry.keys())
                continue
            bindings[row.id] = ToolBinding(id=row.id, name=row.name, tool=tool)
            log.debug("loaded tool", tool=row.name)
        return bindings

    async def _digest(self) -> Digest:
        return digest_rows(await self._store.list_tools(), "id", "name", "updated_at")

    @property
    def cache(self) -> ReloadCache[ToolBinding]:
        return self._cache

    async def initialize(self) -> None:
        await self._cache.initialize()

    async def get(self, tool_id: str) -> ToolBinding | None:
        return await self._cache.get(tool_id)

    async def get_all(self) -> Mapping[str, ToolBinding]:
        return await self._cache.get_all()

    async def reload(self) -> None:
        await self._cache.reload()

    def is_ready(self) -> bool:
        return self._cache.is_ready()

    def stats(self) -> JsonDict:
        return self._cache.stats()

    def shutdown(self) -> None:
        self._cache.shutdown()
