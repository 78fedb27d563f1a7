"""Unified error handling for agentcase.

- ErrorCode: Standard error codes for cache failures
- CacheError/CacheException: Structured errors and exceptions
- NotFoundError, InitializationError, StaleDataError, CompositionCycleError,
  UnknownCapabilityError: raised at the points the cache layer surfaces failures
"""

from .errors import (
    CacheError,
    CacheException,
    CompositionCycleError,
    ErrorCode,
    InitializationError,
    NotFoundError,
    StaleDataError,
    UnknownCapabilityError,
    classify_exception,
)
from .types import JsonDict, JsonMapping, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "CacheError", "CacheException", "classify_exception",
    # Raised errors
    "NotFoundError", "InitializationError", "StaleDataError",
    "CompositionCycleError", "UnknownCapabilityError",
    # JSON aliases
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue",
]
