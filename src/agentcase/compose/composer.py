"""Agent composer: a registry of composite agents over a cached agent list.

The agent list is a digest-reloaded collection. Each agent's fields
(instructions, model, tools, sub-agents) are separate entries of one
hash-verified cache keyed ``<field>:<agent_id>``, each verified against a
digest of just that field's source data.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from agentcase.cache.digest import Digest, digest_ids, digest_parts, digest_rows
from agentcase.cache.reload import ReloadCache
from agentcase.cache.ttl import Clock
from agentcase.cache.verified import HashVerifiedCache
from agentcase.detect import DigestChangeDetector
from agentcase.foundation.config import AgentcaseSettings, get_settings
from agentcase.foundation.errors import CompositionCycleError, JsonDict, NotFoundError
from agentcase.runtime.observability.logging import get_logger
from agentcase.services.mcp import McpManager
from agentcase.services.models import ModelBinding, ModelManager
from agentcase.services.tools import ToolManager
from agentcase.store import AgentRecord, ConfigStore, PromptVersion

from .agent import AgentState, ComposedAgent

FIELD_KINDS: tuple[str, ...] = ("instructions", "model", "tools", "agents")

_NAME = "AgentComposer"

log = get_logger("agentcase.compose")


def field_key(kind: str, agent_id: str) -> str:
    return f"{kind}:{agent_id}"


class AgentComposer:
    """Builds and serves ComposedAgents for one tenant.

    Lookups go registry first, then the agent list. A change of the list
    digest clears the registry and invalidates the field entries of agents
    whose record changed or disappeared; agents are rebuilt lazily on their
    next lookup. An agent whose fields fail to resolve is logged, marked
    ``failed`` and skipped without affecting the others.

    Args:
        store: Authoritative store
        models: Model bindings
        tools: Tool bindings
        mcp: Remote tool servers, or None when no MCP client is configured
        settings: Tenant and agent cache settings (defaults to ``get_settings()``)
        change_detector: Per-agent detector used by ``check_agent``
        clock: Monotonic time source

    Example:
        >>> composer = AgentComposer(store, models, tools, mcp, settings=settings)
        >>> await composer.initialize()
        >>> agent = await composer.get_agent("support")
        >>> prompt = await agent.instructions()
    """

    __slots__ = (
        "_store", "_models", "_tools", "_mcp", "_tenant_id", "_detector", "_collection", "_fields",
        "_registry", "_records", "_names", "_initialized",
    )

    def __init__(
        self,
        store: ConfigStore,
        models: ModelManager,
        tools: ToolManager,
        mcp: McpManager | None = None,
        *,
        settings: AgentcaseSettings | None = None,
        change_detector: DigestChangeDetector | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        cache = settings.agents
        self._store = store
        self._models = models
        self._tools = tools
        self._mcp = mcp
        self._tenant_id = settings.require_tenant()
        self._detector = change_detector
        self._collection: ReloadCache[AgentRecord] = ReloadCache(
            name=_NAME,
            load_data=self._load_records,
            get_change_hash=self._collection_digest,
            ttl=cache.ttl,
            check_period=cache.check_period,
            max_check_failures=cache.max_check_failures,
            clock=clock,
        )
        self._collection.on_change(self._on_collection_change)
        self._fields: HashVerifiedCache[Any] = HashVerifiedCache(
            name="AgentFields",
            ttl=cache.ttl,
            check_period=cache.check_period,
            max_check_failures=cache.max_check_failures,
            clock=clock,
        )
        self._registry: dict[str, ComposedAgent] = {}
        self._records: Mapping[str, AgentRecord] = {}
        self._names: dict[str, str] = {}
        self._initialized = False

    # ═════════════════════════════════════════════════════════════════
    # Agent list
    # ═════════════════════════════════════════════════════════════════

    async def _load_records(self) -> dict[str, AgentRecord]:
        return {r.id: r for r in await self._store.list_agents(self._tenant_id)}

    async def _collection_digest(self) -> Digest:
        rows = await self._store.list_agents(self._tenant_id)
        return digest_rows(rows, "id", "name", "description", "updated_at")

    def _index(self, records: Mapping[str, AgentRecord]) -> None:
        self._records = records
        self._names = {r.name: r.id for r in records.values()}

    async def _on_collection_change(self) -> None:
        records = self._collection.peek_all()
        stale = [agent_id for agent_id, old in self._records.items() if records.get(agent_id) != old]
        for agent_id in stale:
            self._invalidate_fields(agent_id)
        self._registry.clear()
        self._index(records)
        log.info("agent list changed, registry cleared", agents=len(records), invalidated=len(stale))

    def _invalidate_fields(self, agent_id: str) -> int:
        return self._fields.invalidate_many(field_key(kind, agent_id) for kind in FIELD_KINDS)

    # ═════════════════════════════════════════════════════════════════
    # Field resolution
    # ═════════════════════════════════════════════════════════════════

    async def _prompt(self, record: AgentRecord) -> tuple[str | None, PromptVersion]:
        label_id = record.label_id or await self._store.default_label_id(self._tenant_id)
        prompt = await self._store.get_prompt_version(record.prompt_id, label_id)
        if prompt is None:
            raise NotFoundError.create(_NAME, f"no prompt version for agent '{record.name}'")
        return label_id, prompt

    async def resolve_instructions(self, record: AgentRecord) -> str:
        async def digest() -> Digest:
            label_id, prompt = await self._prompt(record)
            return digest_parts(record.prompt_id, label_id, prompt.updated_at)

        async def load() -> str:
            return (await self._prompt(record))[1].content

        return await self._fields.get_with_hash(field_key("instructions", record.id), digest, load)

    async def resolve_model(self, record: AgentRecord) -> ModelBinding:
        # tracks the model collection digest, so a reloaded binding replaces the cached one
        async def digest() -> Digest:
            await self._models.cache.check()
            return digest_parts(record.model_id, self._models.cache.digest)

        async def load() -> ModelBinding:
            if (binding := await self._models.get(record.model_id)) is None:
                raise NotFoundError.create(_NAME, f"model '{record.model_id}' not found for agent '{record.name}'")
            return binding

        return await self._fields.get_with_hash(field_key("model", record.id), digest, load)

    async def resolve_tools(self, record: AgentRecord) -> dict[str, object]:
        async def digest() -> Digest:
            local = await self._store.list_agent_tool_ids(record.id)
            remote = [f"{a.mcp_id}:{a.tool_name}" for a in await self._store.list_agent_mcp_tools(record.id)] \
                if self._mcp is not None else []
            await self._tools.cache.check()
            return digest_parts(digest_ids(local), digest_ids(remote), self._tools.cache.digest)

        async def load() -> dict[str, object]:
            tools: dict[str, object] = {}
            for tool_id in await self._store.list_agent_tool_ids(record.id):
                if (binding := await self._tools.get(tool_id)) is None:
                    log.warning("tool not found for agent", agent=record.name, tool_id=tool_id)
                    continue
                tools[binding.name] = binding.tool
            if self._mcp is not None:
                tools.update(await self._mcp.get_agent_mcp_tools(record.id))
            return tools

        return await self._fields.get_with_hash(field_key("tools", record.id), digest, load)

    async def resolve_sub_agents(self, record: AgentRecord, stack: tuple[str, ...]) -> dict[str, ComposedAgent]:
        async def load() -> tuple[str, ...]:
            return tuple(sorted(await self._store.list_sub_agent_ids(record.id, self._tenant_id)))

        async def digest() -> Digest:
            return digest_ids(await load())

        sub_ids: tuple[str, ...] = await self._fields.get_with_hash(field_key("agents", record.id), digest, load)
        agents: dict[str, ComposedAgent] = {}
        for sub_id in sub_ids:
            try:
                sub = await self._materialize(sub_id, stack)
            except CompositionCycleError:
                raise
            except Exception as e:
                log.warning("sub-agent unavailable", agent=record.name, sub_agent_id=sub_id, error=str(e))
                continue
            agents[sub.name] = sub
        return agents

    # ═════════════════════════════════════════════════════════════════
    # Materialization
    # ═════════════════════════════════════════════════════════════════

    def _label(self, agent_id: str) -> str:
        record = self._records.get(agent_id)
        return record.name if record is not None else agent_id

    async def _materialize(self, agent_id: str, stack: tuple[str, ...]) -> ComposedAgent:
        """Resolve every field of an agent, sub-agents included. Raises on failure."""
        if agent_id in stack:
            path = " -> ".join(self._label(i) for i in (*stack, agent_id))
            raise CompositionCycleError.create(_NAME, f"sub-agent cycle: {path}")
        agent = self._registry.get(agent_id)
        if agent is not None and agent.ready:
            return agent
        if (record := self._records.get(agent_id)) is None:
            raise NotFoundError.create(_NAME, f"agent id '{agent_id}' is not in the agent list")
        if agent is None or agent.record != record:
            agent = self._registry[agent_id] = ComposedAgent(record, self)

        agent.state = AgentState.MATERIALIZING
        try:
            await self.resolve_instructions(record)
            await self.resolve_model(record)
            await self.resolve_tools(record)
            await self.resolve_sub_agents(record, (*stack, agent_id))
        except Exception as e:
            agent.state = AgentState.FAILED
            agent.error = str(e)
            log.error("failed to build agent", agent=record.name, error=str(e))
            raise
        agent.state = AgentState.READY
        agent.error = None
        log.debug("agent ready", agent=record.name)
        return agent

    async def _materialize_all(self) -> int:
        ready = 0
        for agent_id in list(self._records):
            try:
                await self._materialize(agent_id, ())
            except Exception:
                continue  # logged in _materialize
            ready += 1
        return ready

    # ═════════════════════════════════════════════════════════════════
    # Public API
    # ═════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Load the agent list and build every agent. List load failure is fatal."""
        if self._initialized:
            log.debug("agent composer already initialized")
            return
        log.info("initializing agent composer", tenant_id=self._tenant_id)
        await self._collection.initialize()
        self._index(self._collection.peek_all())
        ready = await self._materialize_all()
        self._initialized = True
        log.info("agent composer initialized", agents=len(self._records), ready=ready)

    def is_ready(self) -> bool:
        return self._initialized

    async def _sync(self) -> None:
        if not self._initialized:
            await self.initialize()
        await self._collection.get_all()

    async def find_agent(self, name: str) -> ComposedAgent | None:
        await self._sync()
        if (agent_id := self._names.get(name)) is None:
            log.warning("agent not found", agent=name)
            return None
        agent = self._registry.get(agent_id)
        if agent is not None and agent.ready:
            return agent
        try:
            return await self._materialize(agent_id, ())
        except Exception:
            return None

    async def get_agent(self, name: str) -> ComposedAgent:
        """Agent by name; NotFoundError when it does not exist or cannot be built."""
        if (agent := await self.find_agent(name)) is None:
            raise NotFoundError.create(_NAME, f"agent '{name}' not found")
        return agent

    async def get_all(self) -> dict[str, ComposedAgent]:
        """Every agent that builds successfully, keyed by name."""
        await self._sync()
        agents: dict[str, ComposedAgent] = {}
        for agent_id, record in list(self._records.items()):
            try:
                agents[record.name] = await self._materialize(agent_id, ())
            except Exception:
                continue
        return agents

    async def list_names(self) -> list[str]:
        await self._sync()
        return sorted(self._names)

    async def check_agent(self, name: str) -> bool:
        """Run the per-agent change detector; on change, reload the list and drop the agent's fields."""
        if self._detector is None:
            return False
        try:
            changed = await self._detector(name)
        except Exception as e:
            log.error("agent change check failed", agent=name, error=str(e))
            return False
        if changed and (agent_id := self._names.get(name)) is not None:
            await self._collection.reload()
            self._invalidate_fields(agent_id)
            self._registry.pop(agent_id, None)
            log.info("agent changed, dropped cached fields", agent=name)
        return changed

    async def refresh(self) -> None:
        """Drop every cached field, reload the agent list and rebuild all agents now."""
        log.info("refreshing agents")
        self._fields.clear()
        self._registry.clear()
        await self._collection.reload()
        self._index(self._collection.peek_all())
        self._initialized = True
        ready = await self._materialize_all()
        log.info("agents refreshed", agents=len(self._records), ready=ready)

    def get_cache_stats(self) -> JsonDict:
        agents = list(self._registry.values())
        return {
            "agent_count": len(agents),
            "initialized": self._initialized,
            "agent_names": sorted(a.name for a in agents),
            "ready": sum(a.ready for a in agents),
            "failed": sorted(a.name for a in agents if a.state is AgentState.FAILED),
            "collection": self._collection.stats(),
            "fields": self._fields.stats(),
        }

    def shutdown(self) -> None:
        self._collection.shutdown()
        self._fields.shutdown()
        self._registry.clear()
        self._index({})
        self._initialized = False
        log.info("agent composer shut down")
