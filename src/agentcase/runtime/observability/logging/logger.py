"""Structured logging for cache and composition events.

Provides context-aware structured logging:
- Cache context binding (cache name, key)
- Human-readable dev output, JSON for production
- Scoped context via log_context

Quick Start:
    >>> from agentcase.runtime.observability.logging import get_logger, configure_logging
    >>>
    >>> # Configure (once at startup)
    >>> configure_logging(format="console")  # or "json" for production
    >>>
    >>> log = get_logger("agentcase.cache")
    >>> log.info("cache set", key="agents")

    >>> # Bind cache context
    >>> log = log.bind_cache("ModelManager")
    >>> log.debug("cache hit", key="gpt-4o")
"""

from __future__ import annotations

import logging
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TextIO, runtime_checkable

import orjson

from agentcase.foundation.errors import JsonDict, JsonMapping, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

    from agentcase.foundation.config import LoggingSettings

# Context var for bound context (persists across async calls)
_log_context: ContextVar[JsonDict] = ContextVar("log_context", default={})


# ─────────────────────────────────────────────────────────────────────────────
# Core Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class BoundLogger:
    """Structured logger with bound context. Immutable - bind() returns a new logger with merged context.

    Example:
        >>> log = BoundLogger(context={"cache": "ToolManager"})
        >>> log.info("reloaded", items=3)
        # => 10:30:45.120 [info] reloaded cache="ToolManager" items=3
    """

    context: JsonDict = field(default_factory=dict)
    _renderer: LogRenderer | None = None
    _level: int | None = None

    def bind(self, **kw: JsonValue) -> BoundLogger:
        """Create new logger with additional bound context."""
        return BoundLogger(context={**self.context, **kw}, _renderer=self._renderer, _level=self._level)

    def bind_cache(self, name: str, **kw: JsonValue) -> BoundLogger:
        """Bind cache identity."""
        return self.bind(cache=name, **kw)

    def _log(self, level: int, event: str, **kw: JsonValue) -> None:
        if level < (self._level if self._level is not None else _default_level.get()):
            return
        merged = {**_log_context.get(), **self.context, **kw}
        (self._renderer or _get_renderer()).render(LogEntry(time.time(), _level_name(level), event, merged))

    def debug(self, event: str, **kw: JsonValue) -> None: self._log(logging.DEBUG, event, **kw)
    def info(self, event: str, **kw: JsonValue) -> None: self._log(logging.INFO, event, **kw)
    def warning(self, event: str, **kw: JsonValue) -> None: self._log(logging.WARNING, event, **kw)
    def error(self, event: str, **kw: JsonValue) -> None: self._log(logging.ERROR, event, **kw)


@dataclass(slots=True)
class LogEntry:
    """Log entry with all context."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def ts_iso(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    @property
    def ts_human(self) -> str:
        """Human-readable timestamp (HH:MM:SS.mmm)."""
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    """Protocol for log output renderers."""

    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class ConsoleRenderer:
    """Human-readable colored console output. Format: timestamp [level] event key=value ..."""

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None  # None = auto-detect
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = getattr(self.output, "isatty", lambda: False)()

    def render(self, entry: LogEntry) -> None:
        c = _COLORS if self.colors else _NO_COLORS
        parts = ([f"{c['dim']}{entry.ts_human}{c['reset']}"] if self.show_timestamp else [])
        parts += [f"{_LEVEL_COLORS.get(entry.level, c['dim'])}[{entry.level}]{c['reset']}",
                  f"{c['bold']}{entry.event}{c['reset']}"]
        parts += [f"{c['cyan']}{k}{c['reset']}={_format_value(v, c)}"
                  for k, v in sorted(entry.context.items())]
        print(" ".join(parts), file=self.output)

@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines output for log aggregation (Elasticsearch, Loki, Datadog, etc.)."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        print(orjson.dumps({"timestamp": entry.ts_iso, "level": entry.level, "event": entry.event,
                            **entry.context}, option=orjson.OPT_NON_STR_KEYS, default=str).decode(), file=self.output)


@dataclass(slots=True)
class NoOpRenderer:
    """Silent renderer."""

    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class ListRenderer:
    """Collects entries in memory; used by tests to assert on emitted events."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self, level: str | None = None) -> list[str]:
        return [e.event for e in self.entries if level is None or e.level == level]

    def clear(self) -> None:
        self.entries.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Global Configuration
# ─────────────────────────────────────────────────────────────────────────────


_renderer: ContextVar[LogRenderer | None] = ContextVar("log_renderer", default=None)
_default_level: ContextVar[int] = ContextVar("log_level", default=logging.INFO)


def configure_logging(
    format: str = "console",  # noqa: A002 - shadows builtin but matches stdlib
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
    renderer: LogRenderer | None = None,
) -> LogRenderer:
    """Configure global structured logging. Format: "console" (human), "json" (machine), "none"."""
    _default_level.set(getattr(logging, level.upper(), logging.INFO))
    if renderer is None:
        match format:
            case "console": renderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
            case "json": renderer = JsonRenderer(output=output or sys.stdout)
            case "none": renderer = NoOpRenderer()
            case _: raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    _renderer.set(renderer)
    return renderer


def configure_from_settings(settings: LoggingSettings | None = None, *, output: TextIO | None = None) -> LogRenderer:
    """Configure logging from LoggingSettings (AGENTCASE_LOG_* environment)."""
    if settings is None:
        from agentcase.foundation.config import get_settings
        settings = get_settings().logging
    return configure_logging(settings.format, settings.level, output=output)


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Get a structured logger with optional initial context. Name is added to context as 'logger'."""
    ctx = {**initial_context, **({"logger": name} if name else {})}
    return BoundLogger(context=ctx)


def _get_renderer() -> LogRenderer:
    if (renderer := _renderer.get()) is None:
        _renderer.set(renderer := ConsoleRenderer())
    return renderer


class log_context:
    """Context manager for scoped logging context. Adds key-value pairs to all log entries within the scope."""

    __slots__ = ("_ctx", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._ctx: JsonMapping = dict(kw)
        self._token: object | None = None

    def __enter__(self) -> log_context:
        self._token = _log_context.set({**_log_context.get(), **self._ctx})
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None,
                 exc_tb: TracebackType | None) -> None:
        if self._token is not None:
            _log_context.reset(self._token)  # type: ignore[arg-type]


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


_COLORS = {"reset": "\033[0m", "bold": "\033[1m", "dim": "\033[2m", "red": "\033[31m",
           "green": "\033[32m", "yellow": "\033[33m", "blue": "\033[34m", "cyan": "\033[36m", "white": "\033[37m"}
_NO_COLORS = {k: "" for k in _COLORS}
_LEVEL_COLORS = {"debug": _COLORS["dim"], "info": _COLORS["green"], "warning": _COLORS["yellow"], "error": _COLORS["red"]}


def _level_name(level: int) -> str:
    return logging.getLevelName(level).lower()


def _format_value(v: object, c: dict[str, str]) -> str:
    """Format a value for console output."""
    match v:
        case str(): return f'{c["yellow"]}"{v}"{c["reset"]}'
        case bool(): return f'{c["blue"]}{str(v).lower()}{c["reset"]}'
        case int() | float(): return f'{c["blue"]}{v}{c["reset"]}'
        case dict(): return f'{c["dim"]}{{{len(v)} items}}{c["reset"]}'
        case list() | tuple(): return f'{c["dim"]}[{len(v)} items]{c["reset"]}'
        case _: return f'{c["white"]}{v!r}{c["reset"]}'
