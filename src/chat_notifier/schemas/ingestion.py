"""File-ingestion event schema — cards for partner file uploads and processing.

Tracks a partner file through upload, processing and reporting. Every card
shows partner, file, stage and timestamp, plus counters and a message when
the event carries them.
"""

from __future__ import annotations

import enum
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from chat_notifier.schemas.base import CardPayload
from chat_notifier.utils.crypto import sha1, thread_key
from chat_notifier.utils.text import truncate_message


class IngestionEvent(enum.StrEnum):
    """Lifecycle events of an ingested file."""

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    INVALID_SCHEMA = "INVALID_SCHEMA"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    REPORT_GENERATED = "REPORT_GENERATED"


# event -> (emoji, colour)
EVENT_STYLE: dict[IngestionEvent, tuple[str, str]] = {
    IngestionEvent.UPLOADED: ("📥", "#4285F4"),
    IngestionEvent.PROCESSING: ("⚙️", "#FBBC04"),
    IngestionEvent.INVALID_SCHEMA: ("❌", "#EA4335"),
    IngestionEvent.PROCESSED: ("✅", "#34A853"),
    IngestionEvent.FAILED: ("🔥", "#EA4335"),
    IngestionEvent.REPORT_GENERATED: ("📄", "#34A853"),
}


class IngestionCounts(BaseModel):
    """Record counters reported by the processing job."""

    received: int | None = None
    valid: int | None = None
    invalid: int | None = None
    processed: int | None = None


class IngestionPayload(BaseModel):
    """One ingestion event."""

    event: IngestionEvent
    partner: str
    bucket: str
    object: str = Field(description="Object path inside the bucket")
    stage: IngestionEvent | None = None
    counts: IngestionCounts | None = None
    message: str | None = None
    trace_id: str | None = None
    ts: str | None = Field(default=None, description="ISO 8601 timestamp")


class IngestionSchema:
    """Card layout and keying rules for :class:`IngestionPayload`."""

    name = "ingestion"

    def build_card(self, payload: IngestionPayload, *, max_message: int) -> CardPayload:
        emoji, colour = EVENT_STYLE[payload.event]
        widgets: list[dict[str, Any]] = [
            _text_field("Partner", payload.partner),
            _text_field("File", payload.object),
            _text_field("Stage", f'<font color="{colour}">{payload.stage or payload.event}</font>'),
            _text_field("Timestamp", payload.ts or datetime.now(tz=UTC).isoformat()),
        ]
        if payload.counts is not None:
            widgets.append(_counts_field(payload.counts))
        if payload.message:
            widgets.append(_text_field("Message", truncate_message(payload.message, max_message)))

        return {
            "thread": {"threadKey": thread_key(payload.bucket, payload.object)},
            "cardsV2": [
                {
                    "cardId": f"{self.name}-{int(time.time() * 1000)}",
                    "card": {
                        "header": {
                            "title": f"{emoji} {payload.event}",
                            "subtitle": payload.partner,
                        },
                        "sections": [{"widgets": widgets}],
                    },
                }
            ]
        }

    def is_important_event(self, event: IngestionEvent | str) -> bool:
        """Everything except PROCESSING is important."""
        return event != IngestionEvent.PROCESSING

    def get_event(self, payload: IngestionPayload) -> IngestionEvent:
        return payload.event

    def get_idempotency_key(self, payload: IngestionPayload) -> str:
        """Hash of event, bucket, object and processed count."""
        processed = ""
        if payload.counts is not None and payload.counts.processed is not None:
            processed = str(payload.counts.processed)
        return idempotency_key(payload.event, payload.bucket, payload.object, processed)


def idempotency_key(event: str, bucket: str, obj: str, processed: str = "") -> str:
    """Deterministic key over ``event:bucket:object:processed``."""
    return sha1(":".join((str(event), bucket, obj, processed)))


def _text_field(label: str, value: str) -> dict[str, Any]:
    return {"textParagraph": {"text": f"<b>{label}:</b> {value}"}}


def _counts_field(counts: IngestionCounts) -> dict[str, Any]:
    parts = [
        f"{name}: {value}"
        for name, value in (
            ("received", counts.received),
            ("valid", counts.valid),
            ("invalid", counts.invalid),
            ("processed", counts.processed),
        )
        if value is not None
    ]
    return {"textParagraph": {"text": f"<b>Totals:</b> {' · '.join(parts)}"}}
