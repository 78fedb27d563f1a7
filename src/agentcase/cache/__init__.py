"""Multi-tier caches with digest-based change detection.

- TtlCache: single-key TTL cache with fetch-on-miss and single-flight loads
- ReloadCache: whole collection swapped atomically when a store digest moves
- ChangeGatedCache: short probe tier gating a long data tier
- HashVerifiedCache: per-key (value, digest) pairs re-verified after a throttle window
"""

from .digest import Digest, create_hash, digest_ids, digest_parts, digest_rows
from .gated import ChangeDetector, ChangeGatedCache
from .reload import ChangeCallback, CollectionLoader, DigestFn, ReloadCache
from .ttl import DEFAULT_CHECK_PERIOD, DEFAULT_TTL, CacheEntry, CacheEvent, Clock, Listener, Loader, TtlCache
from .verified import HashVerifiedCache, ProbeRecord, VerifiedEntry

__all__ = [
    # TTL
    "TtlCache", "CacheEntry", "CacheEvent", "Clock", "Listener", "Loader", "DEFAULT_TTL", "DEFAULT_CHECK_PERIOD",
    # Reload
    "ReloadCache", "CollectionLoader", "DigestFn", "ChangeCallback",
    # Change-gated
    "ChangeGatedCache", "ChangeDetector",
    # Hash-verified
    "HashVerifiedCache", "VerifiedEntry", "ProbeRecord",
    # Digests
    "Digest", "create_hash", "digest_ids", "digest_parts", "digest_rows",
]
