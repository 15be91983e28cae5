"""chat-notifier — Google Chat card notifications with batching, retry and de-duplication."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from chat_notifier.config.settings import NotificationLevel, NotifierConfig
from chat_notifier.notifications.dispatcher import Dispatcher
from chat_notifier.schemas.ingestion import IngestionEvent, IngestionPayload, IngestionSchema

if TYPE_CHECKING:
    from chat_notifier.schemas.base import EventSchema

__version__ = "0.1.0"

__all__ = [
    "Dispatcher",
    "IngestionNotifier",
    "NotificationLevel",
    "NotifierConfig",
    "create_ingestion_notifier",
    "create_notifier",
]


def create_notifier(
    schema: EventSchema,
    config: NotifierConfig | None = None,
    **kwargs: Any,
) -> Dispatcher:
    """Create a dispatcher for a custom schema.

    Extra keyword arguments are forwarded to :class:`Dispatcher`.
    """
    return Dispatcher(schema, config=config, **kwargs)


class IngestionNotifier:
    """Dispatcher for ingestion events with one method per event type."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    async def __aenter__(self) -> IngestionNotifier:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.destroy()

    async def notify(self, payload: IngestionPayload, destination: str | None = None) -> None:
        await self._dispatcher.notify(payload, destination)

    async def flush(self) -> None:
        await self._dispatcher.flush()

    async def destroy(self) -> None:
        await self._dispatcher.destroy()

    async def uploaded(self, *, destination: str | None = None, **fields: Any) -> None:
        await self._emit(IngestionEvent.UPLOADED, destination, fields)

    async def processing(self, *, destination: str | None = None, **fields: Any) -> None:
        await self._emit(IngestionEvent.PROCESSING, destination, fields)

    async def invalid_schema(
        self, *, message: str, destination: str | None = None, **fields: Any
    ) -> None:
        await self._emit(IngestionEvent.INVALID_SCHEMA, destination, {**fields, "message": message})

    async def processed(self, *, destination: str | None = None, **fields: Any) -> None:
        await self._emit(IngestionEvent.PROCESSED, destination, fields)

    async def failed(self, *, message: str, destination: str | None = None, **fields: Any) -> None:
        await self._emit(IngestionEvent.FAILED, destination, {**fields, "message": message})

    async def report_generated(self, *, destination: str | None = None, **fields: Any) -> None:
        await self._emit(IngestionEvent.REPORT_GENERATED, destination, fields)

    async def _emit(
        self, event: IngestionEvent, destination: str | None, fields: dict[str, Any]
    ) -> None:
        payload = IngestionPayload(**{**fields, "event": event})
        await self._dispatcher.notify(payload, destination)


def create_ingestion_notifier(
    config: NotifierConfig | None = None,
    **kwargs: Any,
) -> IngestionNotifier:
    """Create a notifier preloaded with :class:`IngestionSchema`."""
    return IngestionNotifier(Dispatcher(IngestionSchema(), config=config, **kwargs))
