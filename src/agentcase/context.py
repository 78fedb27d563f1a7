"""Service context: explicit construction and lifecycle of every manager.

Replaces process-wide singletons. Each context owns its own caches, so two
contexts (or two tests) never share state.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from agentcase.cache.ttl import Clock
from agentcase.compose import AgentComposer
from agentcase.detect import agent_change_detector
from agentcase.foundation.config import AgentcaseSettings, get_settings
from agentcase.foundation.errors import InitializationError, JsonDict
from agentcase.runtime.observability.logging import get_logger, log_context
from agentcase.services import (
    McpClientFactory,
    McpManager,
    ModelFactory,
    ModelManager,
    Tool,
    ToolManager,
    model_registry,
    tool_registry,
)
from agentcase.store import ConfigStore, ModelProvider

log = get_logger("agentcase.context")


@dataclass(slots=True)
class ServiceContext:
    """All services for one tenant, built and started together.

    Example:
        >>> ctx = ServiceContext.create(store, mcp_factory=connect)
        >>> await ctx.initialize()
        >>> agent = await ctx.agents.get_agent("support")
        >>> await ctx.shutdown()
    """

    settings: AgentcaseSettings
    store: ConfigStore
    models: ModelManager
    tools: ToolManager
    mcp: McpManager | None
    agents: AgentComposer
    _started: bool = field(default=False, repr=False)

    @classmethod
    def create(
        cls,
        store: ConfigStore,
        *,
        settings: AgentcaseSettings | None = None,
        model_factories: Mapping[ModelProvider, ModelFactory] | None = None,
        tools: tuple[Tool, ...] | None = None,
        mcp_factory: McpClientFactory | None = None,
        clock: Clock = time.monotonic,
    ) -> ServiceContext:
        """Build every manager. Capability registries are validated here."""
        settings = settings or get_settings()
        tenant_id = settings.require_tenant()
        models = ModelManager(store, factories=model_registry(model_factories), settings=settings.models, clock=clock)
        tool_manager = ToolManager(
            store,
            registry=tool_registry(tools) if tools is not None else tool_registry(),
            settings=settings.tools,
            clock=clock,
        )
        mcp = McpManager(
            store, mcp_factory, settings=settings.mcp, enable_logging=settings.enable_logging, clock=clock,
        ) if mcp_factory is not None else None
        agents = AgentComposer(
            store, models, tool_manager, mcp,
            settings=settings,
            change_detector=agent_change_detector(store, tenant_id),
            clock=clock,
        )
        return cls(settings=settings, store=store, models=models, tools=tool_manager, mcp=mcp, agents=agents)

    async def initialize(self) -> None:
        """Start models, tools, MCP, then agents. Any failure is fatal."""
        if self._started:
            return
        with log_context(tenant_id=self.settings.tenant_id):
            log.info("starting service initialization")
            try:
                await self.models.initialize()
                await self.tools.initialize()
                if self.mcp is not None:
                    await self.mcp.initialize()
                await self.agents.initialize()
            except Exception as e:
                log.error("failed to initialize services", error=str(e))
                if isinstance(e, InitializationError):
                    raise
                raise InitializationError.from_exc("ServiceContext", e, "service initialization failed") from e
            self._started = True
            log.info("all services initialized")

    async def shutdown(self) -> None:
        """Release every cache and disconnect MCP clients. Safe to call more than once."""
        self.agents.shutdown()
        if self.mcp is not None:
            await self.mcp.shutdown()
        self.tools.shutdown()
        self.models.shutdown()
        self._started = False
        log.info("services shut down")

    def health(self) -> JsonDict:
        checks: JsonDict = {
            "models": self.models.is_ready(),
            "tools": self.tools.is_ready(),
            "mcp": self.mcp.is_ready() if self.mcp is not None else None,
            "agents": self.agents.is_ready(),
        }
        healthy = all(v is not False for v in checks.values())
        return {
            "status": "healthy" if healthy else "unhealthy",
            "environment": self.settings.environment,
            "tenant_id": self.settings.tenant_id,
            "checks": checks,
        }
