"""Authoritative configuration store boundary.

Rows are frozen pydantic models. The cache layer reaches the store only
through the async ``ConfigStore`` protocol; query mechanics live with the
implementation (ORM, HTTP API, in-memory fixture).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class ModelProvider(StrEnum):
    """Language-model providers a model row can name."""
    OPENAI = "OPENAI"
    ANTHROPIC = "ANTHROPIC"
    GOOGLE = "GOOGLE"
    OLLAMA = "OLLAMA"
    AZURE_OPENAI = "AZURE_OPENAI"


class _Row(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="ignore")


class AgentRecord(_Row):
    """Agent definition as stored. ``parent_id`` links a sub-agent to its parent."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    prompt_id: str
    label_id: str | None = None
    model_id: str
    parent_id: str | None = None
    tenant_id: str
    updated_at: datetime


class PromptVersion(_Row):
    prompt_id: str
    label_id: str | None = None
    version: int = Field(default=1, ge=1)
    content: str
    updated_at: datetime


class ModelRecord(_Row):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1, description="Provider-side model name, e.g. 'gpt-4o'")
    provider: ModelProvider
    updated_at: datetime


class ToolRecord(_Row):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1, description="Name of the tool implementation")
    updated_at: datetime


class McpServer(_Row):
    """Remote tool server (MCP) connection settings."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    updated_at: datetime


class AgentMcpTool(_Row):
    """Assignment of one remote tool to an agent."""

    mcp_id: str
    tool_name: str


@runtime_checkable
class ConfigStore(Protocol):
    """Async read access to the authoritative store.

    Lookups return None for missing rows; list calls return empty lists.
    Any exception is treated as a transient store failure by the caller.
    """

    async def list_agents(self, tenant_id: str) -> list[AgentRecord]: ...
    async def get_agent_by_name(self, name: str, tenant_id: str) -> AgentRecord | None: ...
    async def list_sub_agent_ids(self, parent_id: str, tenant_id: str) -> list[str]: ...
    async def list_agent_tool_ids(self, agent_id: str) -> list[str]: ...
    async def list_agent_mcp_tools(self, agent_id: str) -> list[AgentMcpTool]: ...
    async def default_label_id(self, tenant_id: str) -> str | None: ...
    async def get_prompt_version(self, prompt_id: str, label_id: str | None) -> PromptVersion | None: ...
    async def list_models(self) -> list[ModelRecord]: ...
    async def get_model(self, model_id: str) -> ModelRecord | None: ...
    async def list_tools(self) -> list[ToolRecord]: ...
    async def list_mcp_servers(self) -> list[McpServer]: ...
