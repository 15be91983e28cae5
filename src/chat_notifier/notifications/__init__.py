"""Notifications — delivery pipeline.

Provides:
- ``Dispatcher`` — filters, de-duplicates, batches and delivers payloads
- ``BatchScheduler`` — size/interval triggered batching
- ``WebhookClient`` — POSTs a payload with exponential-backoff retries
- ``CardBuilder`` — applies the message limit and delegates to a schema
"""

from __future__ import annotations

from chat_notifier.notifications.batch import BatchScheduler
from chat_notifier.notifications.cards import CardBuilder
from chat_notifier.notifications.dispatcher import Dispatcher
from chat_notifier.notifications.events import BatchItem, DeliveryResult
from chat_notifier.notifications.webhook import WebhookClient

__all__ = [
    "BatchItem",
    "BatchScheduler",
    "CardBuilder",
    "DeliveryResult",
    "Dispatcher",
    "WebhookClient",
]
