"""Tools shipped with agentcase, registered by name."""

from __future__ import annotations

import secrets
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import BaseModel, ConfigDict

from agentcase.capabilities import CapabilityRegistry

JST = timezone(timedelta(hours=9), "JST")


@dataclass(frozen=True, slots=True)
class Tool:
    """A named async action an agent can call."""
    name: str
    description: str
    run: Callable[[], Awaitable[BaseModel]]


class _Output(BaseModel):
    model_config = ConfigDict(frozen=True)


class CurrentTime(_Output):
    current_time: str
    timezone: str
    timestamp: int


class CustomerId(_Output):
    customer_id: str
    generated_at: str


class ReservationId(_Output):
    reservation_id: str
    generated_at: str


def _unique_id(prefix: str) -> str:
    # last 8 digits of epoch ms plus a 4-digit random suffix
    return f"{prefix}{str(time.time_ns() // 1_000_000)[-8:]}{secrets.randbelow(10_000):04d}"


async def get_current_time() -> CurrentTime:
    now = datetime.now(JST)
    return CurrentTime(
        current_time=now.strftime("%Y/%m/%d %H:%M:%S"),
        timezone="Asia/Tokyo (JST)",
        timestamp=int(now.timestamp() * 1000),
    )


async def generate_customer_id() -> CustomerId:
    return CustomerId(customer_id=_unique_id("CU"), generated_at=datetime.now(timezone.utc).isoformat())


async def generate_reservation_id() -> ReservationId:
    return ReservationId(reservation_id=_unique_id("RV"), generated_at=datetime.now(timezone.utc).isoformat())


BUILTIN_TOOLS: tuple[Tool, ...] = (
    Tool("getCurrentTime", "Current date and time in Japan Standard Time", get_current_time),
    Tool("generateCustomerId", "Generate a unique customer id for a new customer", generate_customer_id),
    Tool("generateReservationId", "Generate a unique reservation id for a repair booking", generate_reservation_id),
)


def tool_registry(tools: tuple[Tool, ...] = BUILTIN_TOOLS) -> CapabilityRegistry[str, Tool]:
    names = [t.name for t in tools]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate tool names: {sorted(n for n in set(names) if names.count(n) > 1)}")
    return CapabilityRegistry("tools", {t.name: t for t in tools})
