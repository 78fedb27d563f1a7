"""Standardized error handling for the cache layer.

Provides error codes and structured error payloads for cache failures.
Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Standard error codes for cache and composition failures.

    Used for programmatic error handling and bootstrap decisions.
    """
    NOT_FOUND = "NOT_FOUND"
    LOAD_FAILED = "LOAD_FAILED"
    DIGEST_FAILED = "DIGEST_FAILED"
    STALE_DATA = "STALE_DATA"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    INIT_FAILED = "INIT_FAILED"
    COMPOSITION_CYCLE = "COMPOSITION_CYCLE"
    UNKNOWN_CAPABILITY = "UNKNOWN_CAPABILITY"
    INVALID_CONFIG = "INVALID_CONFIG"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connection": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "notfound": ErrorCode.NOT_FOUND,
    "not found": ErrorCode.NOT_FOUND,
    "keyerror": ErrorCode.NOT_FOUND,
    "validation": ErrorCode.INVALID_CONFIG,
    "value": ErrorCode.INVALID_CONFIG,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.EXTERNAL_SERVICE_ERROR


def classify_exception(exc: Exception) -> ErrorCode:
    """Map exception to error code via pattern matching on name/message."""
    if isinstance(exc, CacheException):
        return exc.error.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class CacheError(BaseModel):
    """Structured error for cache, store and composition failures.

    Attributes:
        cache_name: Name of the cache or service that failed
        message: Human-readable error message
        code: Machine-readable error code for programmatic handling
        recoverable: Whether the error might clear on a later attempt
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Cache Error",
            "description": "Structured error from the configuration cache layer",
            "examples": [{
                "cache_name": "AgentComposer",
                "message": "Agent 'support' not found",
                "code": "NOT_FOUND",
                "recoverable": False,
            }],
        },
    )

    cache_name: Annotated[str, Field(min_length=1, description="Cache or service that produced the error")]
    message: Annotated[str, Field(min_length=1, description="Human-readable error message")]
    code: ErrorCode = Field(default=ErrorCode.UNKNOWN, description="Machine-readable error classification")
    recoverable: bool = Field(default=True, description="Whether a later attempt might succeed")
    details: str | None = Field(default=None, description="Optional detailed error info")

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | Exception) -> str:
        """Accept Exception objects and extract message."""
        return str(v) if isinstance(v, Exception) else v

    @computed_field
    @property
    def is_missing(self) -> bool:
        """Whether this error means 'does not exist' rather than a transient failure."""
        return self.code == ErrorCode.NOT_FOUND

    @classmethod
    def from_exception(
        cls,
        cache_name: str,
        exc: Exception,
        context: str = "",
        *,
        recoverable: bool = True,
        include_trace: bool = False,
    ) -> Self:
        """Create from exception with auto-classification."""
        return cls(
            cache_name=cache_name,
            message=f"{context}: {exc}" if context else str(exc),
            code=classify_exception(exc),
            recoverable=recoverable,
            details=traceback.format_exc() if include_trace else None,
        )

    def render(self) -> str:
        return f"[{self.cache_name}] {self.message} ({self.code})"

    __str__ = render


class CacheException(Exception):
    """Exception wrapping a CacheError for raising."""

    __slots__ = ("error",)
    default_code: ErrorCode = ErrorCode.UNKNOWN
    default_recoverable: bool = True

    def __init__(self, error: CacheError) -> None:
        self.error = error
        super().__init__(error.message)

    @classmethod
    def create(cls, cache_name: str, message: str, code: ErrorCode | None = None, *, recoverable: bool | None = None) -> Self:
        """Create exception with the subclass defaults for code and recoverability."""
        return cls(CacheError(
            cache_name=cache_name,
            message=message,
            code=code or cls.default_code,
            recoverable=cls.default_recoverable if recoverable is None else recoverable,
        ))

    @classmethod
    def from_exc(cls, cache_name: str, exc: Exception, context: str = "") -> Self:
        """Create from exception without trace."""
        return cls(CacheError(
            cache_name=cache_name,
            message=f"{context}: {exc}" if context else str(exc),
            code=cls.default_code if cls.default_code != ErrorCode.UNKNOWN else classify_exception(exc),
            recoverable=cls.default_recoverable,
        ))


class NotFoundError(CacheException):
    """Requested object does not exist or could not be built."""
    default_code = ErrorCode.NOT_FOUND
    default_recoverable = False


class InitializationError(CacheException):
    """First load of a cache or service failed; no state to fall back on."""
    default_code = ErrorCode.INIT_FAILED
    default_recoverable = False


class StaleDataError(CacheException):
    """Change checks kept failing past the configured escalation threshold."""
    default_code = ErrorCode.STALE_DATA


class CompositionCycleError(CacheException):
    """Composite objects reference each other in a cycle."""
    default_code = ErrorCode.COMPOSITION_CYCLE
    default_recoverable = False


class UnknownCapabilityError(CacheException):
    """Identifier missing from a closed capability registry."""
    default_code = ErrorCode.UNKNOWN_CAPABILITY
    default_recoverable = False
