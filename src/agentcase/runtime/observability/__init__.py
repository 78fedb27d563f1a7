"""Observability: structured logging for cache events."""

from .logging import BoundLogger, ListRenderer, configure_logging, get_logger, log_context

__all__ = ["BoundLogger", "ListRenderer", "configure_logging", "get_logger", "log_context"]
