"""Event schema protocol — how a payload type becomes a chat card.

Only ``name`` and ``build_card`` are required. The other capabilities are
optional and looked up with ``getattr``; a schema that lacks one gets the
default behaviour (no filtering, no idempotency, default destination,
conventional event-field lookup).
"""

from __future__ import annotations

from typing import Any, Protocol, TypeAlias, runtime_checkable

CardPayload: TypeAlias = dict[str, Any]


@runtime_checkable
class EventSchema(Protocol):
    """Required part of an event schema."""

    name: str

    def build_card(self, payload: Any, *, max_message: int) -> CardPayload:
        """Build a Google Chat Cards v2 payload for *payload*."""
        ...
