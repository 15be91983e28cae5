"""Event schemas — turn payloads into Google Chat cards."""

from __future__ import annotations

from chat_notifier.schemas.base import CardPayload, EventSchema
from chat_notifier.schemas.ingestion import (
    IngestionCounts,
    IngestionEvent,
    IngestionPayload,
    IngestionSchema,
)

__all__ = [
    "CardPayload",
    "EventSchema",
    "IngestionCounts",
    "IngestionEvent",
    "IngestionPayload",
    "IngestionSchema",
]
