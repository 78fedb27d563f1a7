"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from agentcase.foundation.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.agents.ttl)
    3600.0
    >>> print(settings.logging.level)
    'INFO'

    # Or with environment variables:
    # AGENTCASE_TENANT_ID=acme
    # AGENTCASE_AGENTS_CHECK_PERIOD=120
    # AGENTCASE_MCP_CHECK_INTERVAL=30
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReloadCacheSettings(BaseSettings):
    """Settings shared by digest-driven reload caches (agents, models, tools)."""

    model_config = SettingsConfigDict(extra="ignore")

    ttl: PositiveFloat = Field(default=3600.0, description="Snapshot lifetime in seconds")
    check_period: NonNegativeFloat = Field(default=600.0, description="Minimum seconds between digest checks")
    max_check_failures: PositiveInt | None = Field(
        default=None,
        description="Consecutive failed checks before reads fail; None serves stale data indefinitely",
    )


class AgentCacheSettings(ReloadCacheSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTCASE_AGENTS_", extra="ignore")


class ModelCacheSettings(ReloadCacheSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTCASE_MODELS_", extra="ignore")


class ToolCacheSettings(ReloadCacheSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTCASE_TOOLS_", extra="ignore")


class McpCacheSettings(BaseSettings):
    """Change-gated MCP server cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTCASE_MCP_",
        extra="ignore",
    )

    check_interval: PositiveFloat = Field(default=300.0, description="Probe TTL in seconds")
    data_ttl: PositiveFloat = Field(default=86400.0, description="Data TTL in seconds (safety net)")

    @model_validator(mode="after")
    def _probe_shorter_than_data(self) -> McpCacheSettings:
        if self.check_interval >= self.data_ttl:
            raise ValueError("check_interval must be shorter than data_ttl")
        return self


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTCASE_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    cache_events: bool | None = Field(
        default=None,
        description="Emit per-entry cache events; None enables them outside production",
    )


class AgentcaseSettings(BaseSettings):
    """Root settings for agentcase.

    Loads configuration from environment variables with AGENTCASE_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        AGENTCASE_TENANT_ID=acme
        AGENTCASE_ENVIRONMENT=production
        AGENTCASE_AGENTS_TTL=7200
        AGENTCASE_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTCASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    tenant_id: str | None = Field(default=None, description="Tenant whose agents are served")
    environment: Literal["development", "staging", "production"] = "development"

    agents: AgentCacheSettings = Field(default_factory=AgentCacheSettings)
    models: ModelCacheSettings = Field(default_factory=ModelCacheSettings)
    tools: ToolCacheSettings = Field(default_factory=ToolCacheSettings)
    mcp: McpCacheSettings = Field(default_factory=McpCacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        """Normalize environment name to lowercase."""
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @computed_field
    @property
    def enable_logging(self) -> bool:
        """Whether caches emit per-entry events."""
        if self.logging.cache_events is not None:
            return self.logging.cache_events
        return not self.is_production

    def require_tenant(self) -> str:
        """Tenant id, or ValueError when unset."""
        if not self.tenant_id:
            raise ValueError("AGENTCASE_TENANT_ID is not set")
        return self.tenant_id


@lru_cache(maxsize=1)
def get_settings() -> AgentcaseSettings:
    """Get the process settings instance (cached)."""
    return AgentcaseSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
