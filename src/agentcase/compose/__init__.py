"""Composite agents built from independently cached fields."""

from .agent import AgentFieldSource, AgentState, ComposedAgent
from .composer import FIELD_KINDS, AgentComposer, field_key

__all__ = ["AgentComposer", "AgentFieldSource", "AgentState", "ComposedAgent", "FIELD_KINDS", "field_key"]
