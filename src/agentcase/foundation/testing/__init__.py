"""Testing utilities: in-memory store, fake clock and fake MCP clients."""

from .fakes import FakeClock, FakeMcpClient, FakeMcpClientFactory
from .store import EPOCH, MemoryConfigStore, seeded_store

__all__ = ["EPOCH", "FakeClock", "FakeMcpClient", "FakeMcpClientFactory", "MemoryConfigStore", "seeded_store"]
