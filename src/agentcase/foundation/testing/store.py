"""In-memory ConfigStore for tests.

Provides MemoryConfigStore with:
- Mutable tables for agents, prompts, models, tools and MCP servers
- Call recording for verifying how often the store was queried
- Per-method failure injection for simulating outages
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from agentcase.store import (
    AgentMcpTool,
    AgentRecord,
    McpServer,
    ModelProvider,
    ModelRecord,
    PromptVersion,
    ToolRecord,
)

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


@dataclass
class MemoryConfigStore:
    """Mutable in-memory store implementing the ConfigStore protocol.

    Example:
        >>> store = MemoryConfigStore()
        >>> store.add_model(ModelRecord(id="m1", name="gpt-4o", provider="OPENAI", updated_at=EPOCH))
        >>> await store.list_models()
        >>> assert store.call_count("list_models") == 1
        >>> store.fail("list_models")   # next calls raise ConnectionError
    """

    agents: dict[str, AgentRecord] = field(default_factory=dict)
    prompts: list[PromptVersion] = field(default_factory=list)
    default_labels: dict[str, str] = field(default_factory=dict)
    models: dict[str, ModelRecord] = field(default_factory=dict)
    tools: dict[str, ToolRecord] = field(default_factory=dict)
    agent_tools: dict[str, list[str]] = field(default_factory=dict)
    agent_mcp_tools: dict[str, list[AgentMcpTool]] = field(default_factory=dict)
    mcp_servers: dict[str, McpServer] = field(default_factory=dict)
    calls: list[tuple[str, tuple[object, ...]]] = field(default_factory=list)
    failures: dict[str, Exception] = field(default_factory=dict)

    # ─────────────────────────────────────────────────────────────────
    # Recording & failure injection
    # ─────────────────────────────────────────────────────────────────

    def _record(self, method: str, *args: object) -> None:
        self.calls.append((method, args))
        if (exc := self.failures.get(method)) is not None:
            raise exc

    def call_count(self, method: str | None = None) -> int:
        return len(self.calls) if method is None else sum(1 for m, _ in self.calls if m == method)

    def reset_calls(self) -> None:
        self.calls.clear()

    def fail(self, method: str, exc: Exception | None = None) -> None:
        """Make every later call of ``method`` raise."""
        self.failures[method] = exc or ConnectionError(f"store unavailable: {method}")

    def recover(self, method: str | None = None) -> None:
        if method is None:
            self.failures.clear()
        else:
            self.failures.pop(method, None)

    # ─────────────────────────────────────────────────────────────────
    # Mutation
    # ─────────────────────────────────────────────────────────────────

    def add_agent(self, record: AgentRecord) -> AgentRecord:
        self.agents[record.id] = record
        return record

    def remove_agent(self, agent_id: str) -> None:
        self.agents.pop(agent_id, None)

    def add_prompt(self, prompt: PromptVersion) -> PromptVersion:
        self.prompts = [p for p in self.prompts
                        if (p.prompt_id, p.label_id, p.version) != (prompt.prompt_id, prompt.label_id, prompt.version)]
        self.prompts.append(prompt)
        return prompt

    def set_default_label(self, tenant_id: str, label_id: str) -> None:
        self.default_labels[tenant_id] = label_id

    def add_model(self, record: ModelRecord) -> ModelRecord:
        self.models[record.id] = record
        return record

    def remove_model(self, model_id: str) -> None:
        self.models.pop(model_id, None)

    def add_tool(self, record: ToolRecord) -> ToolRecord:
        self.tools[record.id] = record
        return record

    def assign_tools(self, agent_id: str, *tool_ids: str) -> None:
        self.agent_tools[agent_id] = list(tool_ids)

    def assign_mcp_tool(self, agent_id: str, mcp_id: str, tool_name: str) -> None:
        self.agent_mcp_tools.setdefault(agent_id, []).append(AgentMcpTool(mcp_id=mcp_id, tool_name=tool_name))

    def add_mcp_server(self, server: McpServer) -> McpServer:
        self.mcp_servers[server.id] = server
        return server

    def remove_mcp_server(self, mcp_id: str) -> None:
        self.mcp_servers.pop(mcp_id, None)

    # ─────────────────────────────────────────────────────────────────
    # ConfigStore
    # ─────────────────────────────────────────────────────────────────

    async def list_agents(self, tenant_id: str) -> list[AgentRecord]:
        self._record("list_agents", tenant_id)
        return [a for a in self.agents.values() if a.tenant_id == tenant_id]

    async def get_agent_by_name(self, name: str, tenant_id: str) -> AgentRecord | None:
        self._record("get_agent_by_name", name, tenant_id)
        return next((a for a in self.agents.values() if a.name == name and a.tenant_id == tenant_id), None)

    async def list_sub_agent_ids(self, parent_id: str, tenant_id: str) -> list[str]:
        self._record("list_sub_agent_ids", parent_id, tenant_id)
        return [a.id for a in self.agents.values() if a.parent_id == parent_id and a.tenant_id == tenant_id]

    async def list_agent_tool_ids(self, agent_id: str) -> list[str]:
        self._record("list_agent_tool_ids", agent_id)
        return list(self.agent_tools.get(agent_id, []))

    async def list_agent_mcp_tools(self, agent_id: str) -> list[AgentMcpTool]:
        self._record("list_agent_mcp_tools", agent_id)
        return list(self.agent_mcp_tools.get(agent_id, []))

    async def default_label_id(self, tenant_id: str) -> str | None:
        self._record("default_label_id", tenant_id)
        return self.default_labels.get(tenant_id)

    async def get_prompt_version(self, prompt_id: str, label_id: str | None) -> PromptVersion | None:
        self._record("get_prompt_version", prompt_id, label_id)
        if label_id is not None:
            return next((p for p in self.prompts if p.prompt_id == prompt_id and p.label_id == label_id), None)
        candidates = [p for p in self.prompts if p.prompt_id == prompt_id]
        return max(candidates, key=lambda p: p.version, default=None)

    async def list_models(self) -> list[ModelRecord]:
        self._record("list_models")
        return list(self.models.values())

    async def get_model(self, model_id: str) -> ModelRecord | None:
        self._record("get_model", model_id)
        return self.models.get(model_id)

    async def list_tools(self) -> list[ToolRecord]:
        self._record("list_tools")
        return list(self.tools.values())

    async def list_mcp_servers(self) -> list[McpServer]:
        self._record("list_mcp_servers")
        return list(self.mcp_servers.values())


def seeded_store(tenant_id: str = "acme") -> MemoryConfigStore:
    """Store with one model, the built-in tools and a 'support' agent.

    The support agent uses model ``m1``, prompt ``p1`` (label ``l1``) and the
    ``getCurrentTime`` tool.
    """
    store = MemoryConfigStore()
    store.add_model(ModelRecord(id="m1", name="gpt-4o", provider=ModelProvider.OPENAI, updated_at=EPOCH))
    for i, name in enumerate(("getCurrentTime", "generateCustomerId", "generateReservationId"), start=1):
        store.add_tool(ToolRecord(id=f"t{i}", name=name, updated_at=EPOCH))
    store.set_default_label(tenant_id, "l1")
    store.add_prompt(PromptVersion(prompt_id="p1", label_id="l1", content="You are a support agent.", updated_at=EPOCH))
    store.add_agent(AgentRecord(
        id="a1", name="support", description="Customer support", prompt_id="p1", model_id="m1",
        tenant_id=tenant_id, updated_at=EPOCH,
    ))
    store.assign_tools("a1", "t1")
    return store
