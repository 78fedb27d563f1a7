"""Deterministic stand-ins for time and MCP connections."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field

from agentcase.store import McpServer


@dataclass
class FakeClock:
    """Manually advanced monotonic clock.

    Example:
        >>> clock = FakeClock()
        >>> cache = TtlCache(loader, ttl=60, clock=clock)
        >>> clock.advance(61)
    """

    now: float = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def set(self, now: float) -> None:
        self.now = now


@dataclass
class FakeMcpClient:
    """MCP client serving a fixed tool listing."""

    server: McpServer
    tools: dict[str, object] = field(default_factory=dict)
    fail_listing: bool = False
    fail_disconnect: bool = False
    list_calls: int = 0
    disconnected: bool = False

    async def list_tools(self) -> Mapping[str, object]:
        self.list_calls += 1
        if self.fail_listing:
            raise ConnectionError(f"MCP server '{self.server.name}' unreachable")
        return dict(self.tools)

    async def disconnect(self) -> None:
        await asyncio.sleep(0)
        self.disconnected = True
        if self.fail_disconnect:
            raise ConnectionError(f"MCP server '{self.server.name}' disconnect failed")


@dataclass
class FakeMcpClientFactory:
    """Builds FakeMcpClients; ``tools`` maps server name to its listing."""

    tools: dict[str, dict[str, object]] = field(default_factory=dict)
    clients: list[FakeMcpClient] = field(default_factory=list)
    failing_servers: set[str] = field(default_factory=set)

    def __call__(self, server: McpServer) -> FakeMcpClient:
        if server.name in self.failing_servers:
            raise ValueError(f"invalid MCP url for '{server.name}': {server.url}")
        client = FakeMcpClient(server=server, tools=dict(self.tools.get(server.name, {})))
        self.clients.append(client)
        return client
