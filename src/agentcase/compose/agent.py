"""Composite agent assembled from independently cached fields."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from agentcase.store import AgentRecord

if TYPE_CHECKING:
    from agentcase.services.models import ModelBinding


class AgentState(StrEnum):
    """Materialization state of a ComposedAgent."""
    UNREGISTERED = "unregistered"
    MATERIALIZING = "materializing"
    READY = "ready"
    FAILED = "failed"


class AgentFieldSource(Protocol):
    """Resolves the cached fields of an agent (implemented by AgentComposer)."""

    async def resolve_instructions(self, record: AgentRecord) -> str: ...
    async def resolve_model(self, record: AgentRecord) -> ModelBinding: ...
    async def resolve_tools(self, record: AgentRecord) -> dict[str, object]: ...
    async def resolve_sub_agents(self, record: AgentRecord, stack: tuple[str, ...]) -> dict[str, ComposedAgent]: ...


class ComposedAgent:
    """An agent whose fields are resolved on demand through the field cache.

    Holds only its store record; every accessor goes through the composer so
    a model-only change never recomputes instructions, and sub-agents are
    looked up in the composer registry by id rather than owned.
    """

    __slots__ = ("_record", "_source", "state", "error")

    def __init__(self, record: AgentRecord, source: AgentFieldSource) -> None:
        self._record = record
        self._source = source
        self.state = AgentState.UNREGISTERED
        self.error: str | None = None

    @property
    def record(self) -> AgentRecord:
        return self._record

    @property
    def id(self) -> str:
        return self._record.id

    @property
    def name(self) -> str:
        return self._record.name

    @property
    def description(self) -> str | None:
        return self._record.description

    @property
    def ready(self) -> bool:
        return self.state is AgentState.READY

    async def instructions(self) -> str:
        return await self._source.resolve_instructions(self._record)

    async def model(self) -> ModelBinding:
        return await self._source.resolve_model(self._record)

    async def tools(self) -> dict[str, object]:
        return await self._source.resolve_tools(self._record)

    async def sub_agents(self) -> dict[str, ComposedAgent]:
        """Sub-agents keyed by name."""
        return await self._source.resolve_sub_agents(self._record, (self._record.id,))

    def __repr__(self) -> str:
        return f"ComposedAgent(name={self.name!r}, id={self.id!r}, state={self.state})"
