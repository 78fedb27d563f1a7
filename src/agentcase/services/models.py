"""Language-model bindings cached as one digest-reloaded collection."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from functools import partial
from typing import Callable

from agentcase.cache.digest import Digest, digest_rows
from agentcase.cache.reload import ReloadCache
from agentcase.cache.ttl import Clock
from agentcase.capabilities import CapabilityRegistry
from agentcase.foundation.config import ModelCacheSettings
from agentcase.foundation.errors import JsonDict
from agentcase.runtime.observability.logging import get_logger
from agentcase.store import ConfigStore, ModelProvider

ModelFactory = Callable[[str], object]

log = get_logger("agentcase.services.models")


@dataclass(frozen=True, slots=True)
class ModelHandle:
    """Provider-neutral model reference, the client used when no SDK factory is supplied."""
    provider: ModelProvider
    name: str


@dataclass(frozen=True, slots=True)
class ModelBinding:
    """A store model row bound to a provider client."""
    id: str
    name: str
    provider: ModelProvider
    client: object


def model_registry(factories: Mapping[ModelProvider, ModelFactory] | None = None) -> CapabilityRegistry[ModelProvider, ModelFactory]:
    """Provider registry covering every ModelProvider; defaults to ModelHandle factories."""
    if factories is None:
        factories = {p: partial(ModelHandle, p) for p in ModelProvider}
    return CapabilityRegistry("model_providers", factories, required=ModelProvider)


class ModelManager:
    """Model bindings keyed by model id, reloaded when the model table digest moves.

    Args:
        store: Authoritative store
        factories: Provider registry building a client from a model name
        settings: TTL, check period and escalation threshold
        clock: Monotonic time source
    """

    __slots__ = ("_store", "_factories", "_cache")

    def __init__(
        self,
        store: ConfigStore,
        *,
        factories: CapabilityRegistry[ModelProvider, ModelFactory] | None = None,
        settings: ModelCacheSettings | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or ModelCacheSettings()
        self._store = store
        self._factories = factories if factories is not None else model_registry()
        self._cache: ReloadCache[ModelBinding] = ReloadCache(
            name="ModelManager",
            load_data=self._load,
            get_change_hash=self._digest,
            ttl=settings.ttl,
            check_period=settings.check_period,
            max_check_failures=settings.max_check_failures,
            clock=clock,
        )

    async def _load(self) -> dict[str, ModelBinding]:
        bindings: dict[str, ModelBinding] = {}
        for row in await self._store.list_models():
            try:
                client = self._factories.resolve(row.provider)(row.name)
            except Exception as e:
                log.error("failed to build model", model_id=row.id, provider=str(row.provider), error=str(e))
                continue
            bindings[row.id] = ModelBinding(id=row.id, name=row.name, provider=row.provider, client=client)
        return bindings

    async def _digest(self) -> Digest:
        return digest_rows(await self._store.list_models(), "id", "name", "provider", "updated_at")

    @property
    def cache(self) -> ReloadCache[ModelBinding]:
        return self._cache

    async def initialize(self) -> None:
        await self._cache.initialize()

    async def get(self, model_id: str) -> ModelBinding | None:
        return await self._cache.get(model_id)

    async def get_all(self) -> Mapping[str, ModelBinding]:
        return await self._cache.get_all()

    async def reload(self) -> None:
        await self._cache.reload()

    def is_ready(self) -> bool:
        return self._cache.is_ready()

    def stats(self) -> JsonDict:
        return self._cache.stats()

    def shutdown(self) -> None:
        self._cache.shutdown()
