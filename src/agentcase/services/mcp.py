"""Remote tool server (MCP) connections behind a change-gated server list.

The server list is cached for ``data_ttl`` and only refetched when the MCP
change detector, probed every ``check_interval``, reports a change. Clients
and per-server tool listings are derived from the current list and dropped
whenever a new list replaces it.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from agentcase.cache.gated import ChangeGatedCache
from agentcase.cache.ttl import Clock
from agentcase.detect import DigestChangeDetector, mcp_change_detector
from agentcase.foundation.config import McpCacheSettings
from agentcase.foundation.errors import InitializationError, JsonDict
from agentcase.runtime.observability.logging import get_logger
from agentcase.store import ConfigStore, McpServer

SERVERS_KEY = "mcp-servers"

log = get_logger("agentcase.services.mcp")


@runtime_checkable
class McpClient(Protocol):
    """Connection to one MCP server. The wire protocol lives in the implementation."""

    async def list_tools(self) -> Mapping[str, object]: ...
    async def disconnect(self) -> None: ...


class McpClientFactory(Protocol):
    def __call__(self, server: McpServer) -> McpClient: ...


class McpManager:
    """Per-server MCP clients and tool listings.

    Args:
        store: Authoritative store
        client_factory: Builds a client for a server row
        settings: Probe interval and data TTL
        enable_logging: Log data-tier cache events
        clock: Monotonic time source

    Example:
        >>> mcp = McpManager(store, connect)
        >>> await mcp.initialize()
        >>> tools = await mcp.get_agent_mcp_tools("agent-1")  # {"mcp-1:search": ...}
    """

    __slots__ = ("_store", "_factory", "_detector", "_servers", "_snapshot", "_clients", "_tools", "_initialized")

    def __init__(
        self,
        store: ConfigStore,
        client_factory: McpClientFactory,
        *,
        settings: McpCacheSettings | None = None,
        enable_logging: bool = True,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or McpCacheSettings()
        self._store = store
        self._factory = client_factory
        self._detector: DigestChangeDetector = mcp_change_detector(store)
        self._servers: ChangeGatedCache[list[McpServer]] = ChangeGatedCache(
            self._fetch,
            change_detector=self._detector,
            check_interval=settings.check_interval,
            data_ttl=settings.data_ttl,
            cache_name="McpServersCache",
            enable_logging=enable_logging,
            clock=clock,
        )
        self._snapshot: list[McpServer] | None = None
        self._clients: dict[str, McpClient] = {}
        self._tools: dict[str, Mapping[str, object]] = {}
        self._initialized = False

    async def _fetch(self, _key: str) -> list[McpServer]:
        return await self._store.list_mcp_servers()

    async def _current(self) -> list[McpServer]:
        servers = await self._servers.get(SERVERS_KEY)
        if servers is not self._snapshot:
            if self._snapshot is not None:
                log.info("server list replaced, rebuilding clients", servers=len(servers))
            # swap before awaiting so concurrent readers see the new list and clients
            stale = self._detach()
            self._snapshot = servers
            self._connect(servers)
            await self._disconnect(stale)
        return servers

    def _connect(self, servers: list[McpServer]) -> None:
        for server in servers:
            try:
                self._clients[server.id] = self._factory(server)
            except Exception as e:
                log.error("failed to create MCP client", server=server.name, url=server.url, error=str(e))
                continue
            log.debug("loaded MCP server", server=server.name, url=server.url)
        log.info("loaded MCP servers", servers=len(servers), clients=len(self._clients))

    def _detach(self) -> dict[str, McpClient]:
        """Take the current clients out of service and drop their tool listings."""
        clients, self._clients = self._clients, {}
        self._tools.clear()
        return clients

    async def _disconnect(self, clients: Mapping[str, McpClient]) -> None:
        for mcp_id, client in clients.items():
            try:
                await client.disconnect()
            except Exception as e:
                log.error("failed to disconnect MCP client", mcp_id=mcp_id, error=str(e))

    # ─────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        if self._initialized:
            log.debug("MCP manager already initialized")
            return
        try:
            await self._current()
        except Exception as e:
            log.error("failed to initialize MCP manager", error=str(e))
            raise InitializationError.from_exc("McpManager", e, "initial server load failed") from e
        self._initialized = True
        log.info("MCP manager initialized", clients=len(self._clients))

    def is_ready(self) -> bool:
        return self._initialized

    async def list_servers(self) -> list[McpServer]:
        return list(await self._current())

    async def get_client(self, mcp_id: str) -> McpClient | None:
        await self._current()
        return self._clients.get(mcp_id)

    async def get_tools_by_server(self, mcp_id: str) -> Mapping[str, object]:
        """Tools exposed by one server. Listing failures are logged and yield no tools."""
        client = await self.get_client(mcp_id)
        if client is None:
            log.warning("server not found for MCP id", mcp_id=mcp_id)
            return {}
        if (tools := self._tools.get(mcp_id)) is not None:
            return tools
        try:
            tools = dict(await client.list_tools())
        except Exception as e:
            log.error("failed to list tools for MCP server", mcp_id=mcp_id, error=str(e))
            return {}
        # the list may have been replaced while awaiting
        if self._clients.get(mcp_id) is client:
            self._tools[mcp_id] = tools
        return tools

    async def get_agent_mcp_tools(self, agent_id: str) -> dict[str, object]:
        """Remote tools assigned to an agent, keyed ``mcp_id:tool_name``."""
        tools: dict[str, object] = {}
        for assignment in await self._store.list_agent_mcp_tools(agent_id):
            available = await self.get_tools_by_server(assignment.mcp_id)
            if (tool := available.get(assignment.tool_name)) is None:
                log.warning("MCP tool not found for agent", agent_id=agent_id, mcp_id=assignment.mcp_id,
                            tool=assignment.tool_name)
                continue
            tools[f"{assignment.mcp_id}:{assignment.tool_name}"] = tool
        return tools

    async def get_all_tools(self) -> dict[str, object]:
        """Tools from every connected server, keyed ``mcp_id:tool_name``.

        A server whose listing fails contributes nothing until it recovers.
        """
        await self._current()
        tools: dict[str, object] = {}
        for mcp_id in list(self._clients):
            for name, tool in (await self.get_tools_by_server(mcp_id)).items():
                tools[f"{mcp_id}:{name}"] = tool
        return tools

    async def refresh(self) -> None:
        """Drop clients and the cached server list, reconnecting when initialized."""
        stale = self._detach()
        self._snapshot = None
        self._servers.invalidate(SERVERS_KEY)
        await self._disconnect(stale)
        if self._initialized:
            await self._current()
        log.info("MCP manager refreshed", clients=len(self._clients))

    def get_cache_stats(self) -> JsonDict:
        return {
            "server_count": len(self._clients),
            "initialized": self._initialized,
            "tools_cache_size": len(self._tools),
            "servers_cache": self._servers.stats(),
            "change_detection": self._detector.stats(),
        }

    async def shutdown(self) -> None:
        stale = self._detach()
        self._servers.destroy()
        self._snapshot = None
        self._initialized = False
        await self._disconnect(stale)
        log.info("MCP manager shut down")
