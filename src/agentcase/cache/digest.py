"""Digest helpers for change detection.

A digest is a SHA-256 hex string over a canonical rendering of the store rows
that matter for one cache. Rows are sorted by identity and fields are taken in
a fixed order so equal store state always yields an equal digest.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel

Digest = str

_ROW_SEP = "||"
_FIELD_SEP = ":"


def create_hash(text: str) -> Digest:
    """SHA-256 hex digest of a string."""
    return hashlib.sha256(text.encode()).hexdigest()


def _render(value: object) -> str:
    match value:
        case None: return ""
        case datetime(): return str(int(value.timestamp() * 1000))
        case _: return str(value)


def digest_parts(*parts: object) -> Digest:
    """Digest a fixed sequence of values (None renders as empty)."""
    return create_hash(_FIELD_SEP.join(_render(p) for p in parts))


def digest_rows(rows: Iterable[BaseModel], *fields: str, key: str = "id") -> Digest:
    """Digest rows sorted by ``key`` using ``fields`` in the given order.

    Example:
        >>> digest_rows(models, "id", "name", "provider", "updated_at")
    """
    ordered = sorted(rows, key=lambda r: str(getattr(r, key)))
    return create_hash(_ROW_SEP.join(
        _FIELD_SEP.join(_render(getattr(row, f)) for f in fields) for row in ordered
    ))


def digest_ids(ids: Iterable[str]) -> Digest:
    """Order-insensitive digest of an identifier list."""
    return create_hash(",".join(sorted(ids)))
