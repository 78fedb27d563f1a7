"""Change detectors backed by store digests.

A detector remembers the last digest seen per key and answers "has this key
changed since the previous call". It is the probe function a
``ChangeGatedCache`` caches for its short interval.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Callable

from agentcase.cache.digest import Digest, digest_parts, digest_rows
from agentcase.foundation.errors import JsonDict
from agentcase.runtime.observability.logging import get_logger
from agentcase.store import ConfigStore

Probe = Callable[[str], Awaitable[Digest | None]]

log = get_logger("agentcase.detect")


class DigestChangeDetector:
    """Stateful change detector over a digest probe.

    The first observation of a key reports a change so the caller performs
    its initial load. A probe returning None (entity missing) reports no
    change. Probe errors propagate; ``ChangeGatedCache`` treats them as no
    change.

    Example:
        >>> detector = DigestChangeDetector("servers", probe)
        >>> await detector("mcp-servers")   # True on first call
        >>> await detector("mcp-servers")   # False until the digest moves
    """

    __slots__ = ("_name", "_probe", "_known", "_log")

    def __init__(self, name: str, probe: Probe) -> None:
        self._name = name
        self._probe = probe
        self._known: dict[str, Digest] = {}
        self._log = log.bind(detector=name)

    @property
    def name(self) -> str:
        return self._name

    async def __call__(self, key: str) -> bool:
        current = await self._probe(key)
        if current is None:
            self._log.warning("entity not found in store", key=key)
            return False
        previous = self._known.get(key)
        self._known[key] = current
        if previous is None:
            self._log.info("first check, treating as changed", key=key)
            return True
        if current != previous:
            self._log.info("change detected", key=key, previous=previous[:12], current=current[:12])
            return True
        self._log.debug("no changes detected", key=key)
        return False

    async def refresh(self, key: str) -> None:
        """Record the current digest without reporting a change (e.g. after a webhook)."""
        if (current := await self._probe(key)) is not None:
            self._known[key] = current
            self._log.info("refreshed change detection", key=key)

    def forget(self, key: str) -> None:
        self._known.pop(key, None)

    def clear(self) -> None:
        self._known.clear()
        self._log.info("cleared change detection state")

    def stats(self) -> JsonDict:
        return {"name": self._name, "tracked": sorted(self._known), "total_tracked": len(self._known)}


def agent_change_detector(store: ConfigStore, tenant_id: str) -> DigestChangeDetector:
    """Detector keyed by agent name over the agent, model and prompt timestamps."""

    async def probe(name: str) -> Digest | None:
        agent = await store.get_agent_by_name(name, tenant_id)
        if agent is None:
            return None
        model = await store.get_model(agent.model_id)
        label_id = agent.label_id or await store.default_label_id(tenant_id)
        prompt = await store.get_prompt_version(agent.prompt_id, label_id)
        return digest_parts(
            agent.updated_at,
            model.updated_at if model else None,
            prompt.updated_at if prompt else None,
        )

    return DigestChangeDetector("AgentChangeDetector", probe)


def mcp_change_detector(store: ConfigStore) -> DigestChangeDetector:
    """Detector over the whole MCP server list; the key only namespaces state."""

    async def probe(_key: str) -> Digest:
        return digest_rows(await store.list_mcp_servers(), "id", "name", "url", "updated_at")

    return DigestChangeDetector("McpChangeDetector", probe)
