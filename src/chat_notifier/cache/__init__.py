"""Cache — in-memory idempotency key store."""

from __future__ import annotations

from chat_notifier.cache.memory import ExpiringKeyCache

__all__ = ["ExpiringKeyCache"]
