"""Agentcase - In-memory configuration caches for AI agent services.

Keeps agent definitions, model bindings, tool bindings and remote tool
server (MCP) connections in memory while staying consistent with an
authoritative store that changes asynchronously.

Quick Start:
    >>> from agentcase import ServiceContext, AgentcaseSettings
    >>>
    >>> ctx = ServiceContext.create(store, settings=AgentcaseSettings(tenant_id="acme"))
    >>> await ctx.initialize()
    >>> agent = await ctx.agents.get_agent("support")
    >>> instructions = await agent.instructions()
    >>> await ctx.shutdown()

Cache Building Blocks:
    >>> from agentcase.cache import TtlCache, ReloadCache, ChangeGatedCache, HashVerifiedCache
    >>>
    >>> models = ReloadCache(name="Models", load_data=load_models, get_change_hash=models_digest,
    ...                      check_period=600)
    >>> await models.initialize()
    >>> binding = await models.get("m1")   # digest checked at most once per check_period
"""

from __future__ import annotations

__version__ = "0.1.0"

from .cache import (
    ChangeGatedCache,
    HashVerifiedCache,
    ReloadCache,
    TtlCache,
    create_hash,
    digest_ids,
    digest_rows,
)
from .capabilities import CapabilityRegistry
from .compose import AgentComposer, AgentState, ComposedAgent
from .context import ServiceContext
from .detect import DigestChangeDetector, agent_change_detector, mcp_change_detector
from .foundation.config import AgentcaseSettings, clear_settings_cache, get_settings
from .foundation.errors import (
    CacheError,
    CacheException,
    CompositionCycleError,
    ErrorCode,
    InitializationError,
    NotFoundError,
    StaleDataError,
    UnknownCapabilityError,
)
from .runtime.observability.logging import configure_from_settings, configure_logging, get_logger
from .services import McpManager, ModelManager, ToolManager
from .store import ConfigStore, ModelProvider

__all__ = [
    # Caches
    "TtlCache", "ReloadCache", "ChangeGatedCache", "HashVerifiedCache",
    "create_hash", "digest_ids", "digest_rows",
    # Detection
    "DigestChangeDetector", "agent_change_detector", "mcp_change_detector",
    # Composition
    "AgentComposer", "ComposedAgent", "AgentState",
    # Services
    "ServiceContext", "ModelManager", "ToolManager", "McpManager", "CapabilityRegistry",
    # Store
    "ConfigStore", "ModelProvider",
    # Errors
    "ErrorCode", "CacheError", "CacheException", "NotFoundError", "InitializationError",
    "StaleDataError", "CompositionCycleError", "UnknownCapabilityError",
    # Config & logging
    "AgentcaseSettings", "get_settings", "clear_settings_cache",
    "configure_logging", "configure_from_settings", "get_logger",
]
