"""Card builder — apply the message limit and delegate to the event schema."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chat_notifier.schemas.base import CardPayload, EventSchema

DEFAULT_MAX_MESSAGE = 4000


class CardBuilder:
    """Builds Google Chat card payloads through an :class:`EventSchema`."""

    def __init__(self, schema: EventSchema, *, max_message: int = DEFAULT_MAX_MESSAGE) -> None:
        self._schema = schema
        self._max_message = max_message

    @property
    def max_message(self) -> int:
        return self._max_message

    def build_card(self, payload: Any) -> CardPayload:
        return self._schema.build_card(payload, max_message=self._max_message)
