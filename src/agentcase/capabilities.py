"""Closed capability registries.

Maps identifiers (model providers, tool names) to implementations. The map is
fixed at construction so coverage gaps surface at bootstrap, and lookups of
identifiers outside it raise instead of silently falling back.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Generic, TypeVar

from agentcase.foundation.errors import UnknownCapabilityError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CapabilityRegistry(Generic[K, V]):
    """Immutable identifier -> implementation map.

    Args:
        name: Label used in errors
        entries: The implementations
        required: Keys that must be present (e.g. every member of an enum)

    Raises:
        ValueError: If any ``required`` key has no implementation

    Example:
        >>> providers = CapabilityRegistry("providers", factories, required=ModelProvider)
        >>> factory = providers.resolve(ModelProvider.OPENAI)
    """

    __slots__ = ("_name", "_entries")

    def __init__(self, name: str, entries: Mapping[K, V], *, required: Iterable[K] = ()) -> None:
        if missing := [str(k) for k in required if k not in entries]:
            raise ValueError(f"{name}: no implementation for {', '.join(missing)}")
        self._name = name
        self._entries: Mapping[K, V] = MappingProxyType(dict(entries))

    @property
    def name(self) -> str:
        return self._name

    def resolve(self, key: K) -> V:
        """Implementation for ``key``, or UnknownCapabilityError."""
        try:
            return self._entries[key]
        except KeyError:
            raise UnknownCapabilityError.create(self._name, f"unknown capability '{key}'") from None

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def keys(self) -> list[K]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[K]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"CapabilityRegistry({self._name!r}, keys={sorted(map(str, self._entries))})"
