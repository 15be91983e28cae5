"""Hashing helpers for idempotency and thread keys."""

from __future__ import annotations

import hashlib


def sha1(data: str) -> str:
    """SHA-1 of the UTF-8 encoded string, as 40 hex characters."""
    return hashlib.sha1(data.encode("utf-8")).hexdigest()  # noqa: S324


def thread_key(bucket: str, obj: str) -> str:
    """Stable key grouping messages that concern the same stored object."""
    return sha1(f"{bucket}:{obj}")
