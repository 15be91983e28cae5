"""Dispatcher — the public notify / flush / destroy entry point.

Each payload passes through, in order:

1. the importance filter (``level == "important"`` and the schema has
   ``is_important_event``),
2. the idempotency check (cache enabled and the schema has
   ``get_idempotency_key``),
3. either the batch queue or an immediate delivery.

Immediate delivery failures are raised to the caller. Batched deliveries
run concurrently per flush; each failure is logged and passed to
``on_error`` without affecting the other items.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Self

from chat_notifier.cache.memory import ExpiringKeyCache
from chat_notifier.config.destinations import DestinationResolver
from chat_notifier.config.settings import NotificationLevel, NotifierConfig
from chat_notifier.notifications.batch import BatchScheduler
from chat_notifier.notifications.cards import CardBuilder
from chat_notifier.notifications.webhook import WebhookClient

if TYPE_CHECKING:
    from collections.abc import Callable

    from chat_notifier.metrics.collector import NotifierMetrics
    from chat_notifier.notifications.events import BatchItem
    from chat_notifier.schemas.base import EventSchema

logger = logging.getLogger(__name__)

# Payload fields probed, in order, when the schema has no ``get_event``.
EVENT_FIELDS = ("event", "type", "status")


def extract_event(payload: Any) -> Any:
    """Return the first present ``event`` / ``type`` / ``status`` value."""
    for name in EVENT_FIELDS:
        if isinstance(payload, Mapping):
            value = payload.get(name)
        else:
            value = getattr(payload, name, None)
        if value is not None:
            return value
    return None


class Dispatcher:
    """Filters, de-duplicates, batches and delivers notifications.

    Usage::

        async with Dispatcher(IngestionSchema(), config=NotifierConfig()) as notifier:
            await notifier.notify(payload)
    """

    def __init__(
        self,
        schema: EventSchema,
        *,
        config: NotifierConfig | None = None,
        destinations: DestinationResolver | None = None,
        client: WebhookClient | None = None,
        on_success: Callable[[Any], None] | None = None,
        on_error: Callable[[Any, Exception], None] | None = None,
        metrics: NotifierMetrics | None = None,
    ) -> None:
        """Wire the pipeline components together.

        Args:
            schema: Event schema used to build cards and derive keys.
            config: Notifier settings; read from the environment when omitted.
            destinations: Destination resolver; built from *config* and any
                ``CHAT_WEBHOOK_<NAME>`` variables when omitted.
            client: Delivery client; built from *config* when omitted.
            on_success: Called with the payload after each successful delivery.
            on_error: Called with the payload and error after each failed delivery.
            metrics: Optional Prometheus metrics.

        Raises:
            ConfigurationError: If no destination can be resolved from *config*.
        """
        self._schema = schema
        self._config = config if config is not None else NotifierConfig()
        self._destinations = destinations or DestinationResolver.from_config(self._config)
        self._cards = CardBuilder(schema, max_message=self._config.max_message)
        self._on_success = on_success
        self._on_error = on_error
        self._metrics = metrics

        self._cache: ExpiringKeyCache | None = None
        # Keys of immediate deliveries still awaiting a response.
        self._in_flight: set[str] = set()
        if self._config.idempotency_enabled:
            self._cache = ExpiringKeyCache(ttl=self._config.idempotency_ttl)

        self._owns_client = client is None
        self._client = client or WebhookClient(
            timeout=self._config.timeout,
            max_attempts=self._config.retry_max,
            initial_backoff=self._config.retry_base_delay,
            metrics=metrics,
        )

        self._scheduler: BatchScheduler | None = None
        if self._config.batch_enabled:
            self._scheduler = BatchScheduler(
                size=self._config.batch_size,
                interval=self._config.batch_interval,
                on_flush=self._send_batch,
                flush_on_destroy=self._config.batch_flush_on_destroy,
            )

        self._destroyed = False

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.destroy()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def level(self) -> NotificationLevel:
        return self._config.level

    @property
    def cache(self) -> ExpiringKeyCache | None:
        """Idempotency cache, None when disabled."""
        return self._cache

    @property
    def scheduler(self) -> BatchScheduler | None:
        """Batch scheduler, None when batching is disabled."""
        return self._scheduler

    @property
    def destinations(self) -> DestinationResolver:
        return self._destinations

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def notify(self, payload: Any, destination: str | None = None) -> None:
        """Send *payload*, or queue it when batching is enabled.

        Filtered and duplicate payloads are dropped silently.

        Raises:
            DeliveryError: Immediate delivery exhausted its retries.
            ConfigurationError: No destination could be resolved.
            RuntimeError: The dispatcher has been destroyed.
        """
        if self._destroyed:
            msg = "Dispatcher has been destroyed"
            raise RuntimeError(msg)

        if not self._is_important(payload):
            logger.debug("Dropping non-important event %r", extract_event(payload))
            self._record("filtered")
            return

        key = self._idempotency_key(payload)
        if key and self._cache is not None and (key in self._in_flight or self._cache.has(key)):
            logger.debug("Suppressing duplicate notification %s", key)
            self._record("suppressed")
            return

        if self._scheduler is not None:
            self._scheduler.add(payload, destination)
            # Mark as seen now so a repeat arriving before the flush is suppressed.
            if key and self._cache is not None:
                self._cache.set(key)
            self._record("queued")
            return

        if not key:
            await self._deliver(payload, destination)
            return

        self._in_flight.add(key)
        try:
            await self._deliver(payload, destination)
        finally:
            self._in_flight.discard(key)

    async def flush(self) -> None:
        """Deliver everything queued (no-op when batching is disabled)."""
        if self._scheduler is not None:
            await self._scheduler.flush()

    async def destroy(self) -> None:
        """Flush or drop queued items, then release the cache and HTTP client.

        The scheduler goes first so a final flush can still mark keys in
        the cache. Idempotent.
        """
        if self._destroyed:
            return
        self._destroyed = True
        if self._scheduler is not None:
            await self._scheduler.destroy()
        if self._cache is not None:
            await self._cache.close()
        if self._owns_client:
            await self._client.close()

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _is_important(self, payload: Any) -> bool:
        if self._config.level != NotificationLevel.IMPORTANT:
            return True
        is_important = getattr(self._schema, "is_important_event", None)
        if is_important is None:
            return True
        event = self._event_of(payload)
        if event is None:
            return True
        return bool(is_important(event))

    def _event_of(self, payload: Any) -> Any:
        get_event = getattr(self._schema, "get_event", None)
        if get_event is not None:
            return get_event(payload)
        return extract_event(payload)

    def _idempotency_key(self, payload: Any) -> str | None:
        if self._cache is None:
            return None
        get_key = getattr(self._schema, "get_idempotency_key", None)
        if get_key is None:
            return None
        return get_key(payload) or None

    def _destination_name(self, payload: Any) -> str | None:
        get_name = getattr(self._schema, "get_destination_name", None)
        if get_name is None:
            return None
        return get_name(payload)

    async def _deliver(self, payload: Any, destination: str | None) -> None:
        """Build, resolve and post one payload; report and re-raise failures."""
        try:
            card = self._cards.build_card(payload)
            url = self._destinations.resolve(destination or self._destination_name(payload))
            tracker = (
                self._metrics.track_delivery()
                if self._metrics is not None
                else contextlib.nullcontext()
            )
            with tracker:
                await self._client.post(url, card)
        except Exception as exc:
            self._record("failed")
            self._report_error(payload, exc)
            raise

        key = self._idempotency_key(payload)
        if key and self._cache is not None:
            self._cache.set(key)
        self._record("delivered")
        self._report_success(payload)

    async def _send_batch(self, batch: list[BatchItem]) -> None:
        """Deliver every item concurrently; never raises."""
        if self._metrics is not None:
            self._metrics.observe_batch(len(batch))
        await asyncio.gather(*(self._deliver_item(item) for item in batch))

    async def _deliver_item(self, item: BatchItem) -> None:
        try:
            await self._deliver(item.payload, item.destination)
        except Exception as exc:
            logger.error("Failed to send notification in batch: %s", exc)

    # ------------------------------------------------------------------
    # Callbacks and metrics
    # ------------------------------------------------------------------

    def _report_success(self, payload: Any) -> None:
        if self._on_success is None:
            return
        try:
            self._on_success(payload)
        except Exception:
            logger.exception("on_success callback failed")

    def _report_error(self, payload: Any, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(payload, error)
        except Exception:
            logger.exception("on_error callback failed")

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_outcome(outcome)
