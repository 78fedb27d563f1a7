"""Foundation - Core building blocks for agentcase.

Contains: error handling, configuration, testing utilities.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "CacheError", "CacheException", "classify_exception",
    "NotFoundError", "InitializationError", "StaleDataError", "CompositionCycleError", "UnknownCapabilityError",
    # Config
    "AgentcaseSettings", "get_settings", "clear_settings_cache",
    "AgentCacheSettings", "ModelCacheSettings", "ToolCacheSettings", "McpCacheSettings", "LoggingSettings",
    # Testing
    "MemoryConfigStore", "FakeClock", "FakeMcpClient", "FakeMcpClientFactory", "seeded_store",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorCode", "CacheError", "CacheException", "classify_exception",
                "NotFoundError", "InitializationError", "StaleDataError",
                "CompositionCycleError", "UnknownCapabilityError"):
        from . import errors
        return getattr(errors, name)

    if name in ("AgentcaseSettings", "get_settings", "clear_settings_cache",
                "AgentCacheSettings", "ModelCacheSettings", "ToolCacheSettings",
                "McpCacheSettings", "LoggingSettings"):
        from . import config
        return getattr(config, name)

    if name in ("MemoryConfigStore", "FakeClock", "FakeMcpClient", "FakeMcpClientFactory", "seeded_store"):
        from . import testing
        return getattr(testing, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
