"""Domain services: models, tools and MCP servers served from cache."""

from .builtin import BUILTIN_TOOLS, Tool, tool_registry
from .mcp import SERVERS_KEY, McpClient, McpClientFactory, McpManager
from .models import ModelBinding, ModelFactory, ModelHandle, ModelManager, model_registry
from .tools import ToolBinding, ToolManager

__all__ = [
    # Models
    "ModelManager", "ModelBinding", "ModelHandle", "ModelFactory", "model_registry",
    # Tools
    "ToolManager", "ToolBinding", "Tool", "BUILTIN_TOOLS", "tool_registry",
    # MCP
    "McpManager", "McpClient", "McpClientFactory", "SERVERS_KEY",
]
