"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    AgentCacheSettings,
    AgentcaseSettings,
    LoggingSettings,
    McpCacheSettings,
    ModelCacheSettings,
    ReloadCacheSettings,
    ToolCacheSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AgentCacheSettings",
    "AgentcaseSettings",
    "LoggingSettings",
    "McpCacheSettings",
    "ModelCacheSettings",
    "ReloadCacheSettings",
    "ToolCacheSettings",
    "clear_settings_cache",
    "get_settings",
]
