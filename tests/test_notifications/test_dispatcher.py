"""Tests for the dispatcher — filtering, de-duplication, batching, delivery."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest
from prometheus_client import CollectorRegistry

from chat_notifier.config.destinations import DestinationResolver
from chat_notifier.config.settings import NotificationLevel, NotifierConfig
from chat_notifier.errors.notifier_errors import ConfigurationError, DeliveryError
from chat_notifier.metrics.collector import MetricsCollector, NotifierMetrics
from chat_notifier.notifications.dispatcher import Dispatcher, extract_event
from chat_notifier.notifications.webhook import WebhookClient

_DEFAULT_URL = "https://chat.googleapis.com/v1/spaces/DEFAULT/messages?key=k"
_ERRORS_URL = "https://chat.googleapis.com/v1/spaces/ERRORS/messages?key=k"


class DictSchema:
    """Schema over plain dict payloads with every optional capability."""

    name = "dict"

    def build_card(self, payload: dict[str, Any], *, max_message: int) -> dict[str, Any]:
        return {"text": payload.get("text", "")[:max_message], "id": payload.get("id")}

    def is_important_event(self, event: str) -> bool:
        return event != "debug"

    def get_idempotency_key(self, payload: dict[str, Any]) -> str | None:
        return payload.get("id")

    def get_destination_name(self, payload: dict[str, Any]) -> str | None:
        return payload.get("channel")


class MinimalSchema:
    """Schema with only the required capability."""

    name = "minimal"

    def build_card(self, payload: Any, *, max_message: int) -> dict[str, Any]:
        return {"text": str(payload)}


def _config(**overrides: Any) -> NotifierConfig:
    values: dict[str, Any] = {
        "webhook_url": _DEFAULT_URL,
        "webhooks": {"errors": _ERRORS_URL},
    }
    values.update(overrides)
    return NotifierConfig(**values)


def _client(handler: Any, fake_sleep: Any, max_attempts: int = 3) -> WebhookClient:
    return WebhookClient(
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
    )


def _sent_ids(handler: Any) -> list[Any]:
    return [json.loads(r.content)["id"] for r in handler.requests]


class TestExtractEvent:
    def test_priority_order(self) -> None:
        assert extract_event({"event": "a", "type": "b", "status": "c"}) == "a"
        assert extract_event({"type": "b", "status": "c"}) == "b"
        assert extract_event({"status": "c"}) == "c"
        assert extract_event({"other": "x"}) is None

    def test_attributes(self) -> None:
        class Obj:
            type = "typed"

        assert extract_event(Obj()) == "typed"


class TestDispatcherConstruction:
    def test_requires_destination(self) -> None:
        with pytest.raises(ConfigurationError):
            Dispatcher(DictSchema(), config=NotifierConfig())

    async def test_optional_components(self) -> None:
        d = Dispatcher(DictSchema(), config=_config(idempotency_enabled=False))
        assert d.cache is None
        assert d.scheduler is None
        await d.destroy()

        d = Dispatcher(DictSchema(), config=_config(batch_enabled=True))
        assert d.cache is not None
        assert d.scheduler is not None
        await d.destroy()


class TestDispatcherImmediate:
    async def test_delivers_to_default(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await d.notify({"id": "1", "text": "hello"})

        assert handler.urls == [_DEFAULT_URL]
        assert json.loads(handler.requests[0].content) == {"text": "hello", "id": "1"}

    async def test_explicit_and_schema_destinations(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        client = _client(handler, fake_sleep)
        async with Dispatcher(DictSchema(), config=_config(), client=client) as d:
            await d.notify({"id": "1"}, "errors")
            await d.notify({"id": "2", "channel": "ERRORS"})
            await d.notify({"id": "3", "channel": "unknown"})

        assert handler.urls == [_ERRORS_URL, _ERRORS_URL, _DEFAULT_URL]

    async def test_max_message_applied(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        client = _client(handler, fake_sleep)
        async with Dispatcher(DictSchema(), config=_config(max_message=5), client=client) as d:
            await d.notify({"id": "1", "text": "a long message"})

        assert json.loads(handler.requests[0].content)["text"] == "a lon"

    async def test_duplicate_suppressed(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await d.notify({"id": "same"})
            await d.notify({"id": "same"})
            await d.notify({"id": "other"})

        assert _sent_ids(handler) == ["same", "other"]

    async def test_concurrent_duplicates_deliver_once(self, fake_sleep) -> None:
        hits: list[httpx.Request] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            hits.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(200)

        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await asyncio.gather(d.notify({"id": "same"}), d.notify({"id": "same"}))
            assert d.cache.has("same")

        assert len(hits) == 1

    async def test_in_flight_failure_allows_retry(self, fake_sleep) -> None:
        statuses = iter([500, 200])

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            return httpx.Response(next(statuses))

        client = _client(handler, fake_sleep, max_attempts=1)
        async with Dispatcher(DictSchema(), config=_config(), client=client) as d:
            results = await asyncio.gather(
                d.notify({"id": "x"}), d.notify({"id": "x"}), return_exceptions=True
            )
            assert isinstance(results[0], DeliveryError)
            assert results[1] is None

            await d.notify({"id": "x"})
            assert d.cache.has("x")

    async def test_no_key_means_no_suppression(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await d.notify({"text": "a"})
            await d.notify({"text": "a"})

        assert len(handler.requests) == 2

    async def test_idempotency_disabled(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(idempotency_enabled=False)
        async with Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep)) as d:
            await d.notify({"id": "same"})
            await d.notify({"id": "same"})

        assert len(handler.requests) == 2

    async def test_failure_raises_and_does_not_mark_key(self, make_handler, fake_sleep) -> None:
        handler = make_handler(500, 500, 500, 200)
        errors: list[tuple[Any, Exception]] = []
        client = _client(handler, fake_sleep)
        async with Dispatcher(
            DictSchema(),
            config=_config(),
            client=client,
            on_error=lambda p, e: errors.append((p, e)),
        ) as d:
            with pytest.raises(DeliveryError, match="HTTP 500"):
                await d.notify({"id": "x"})
            assert not d.cache.has("x")

            # A retry by the caller is not treated as a duplicate
            await d.notify({"id": "x"})
            assert d.cache.has("x")

        assert len(handler.requests) == 4
        assert len(errors) == 1
        assert errors[0][0] == {"id": "x"}
        assert isinstance(errors[0][1], DeliveryError)

    async def test_on_success_callback(self, make_handler, fake_sleep) -> None:
        delivered: list[Any] = []
        client = _client(make_handler(200), fake_sleep)
        async with Dispatcher(
            DictSchema(), config=_config(), client=client, on_success=delivered.append
        ) as d:
            await d.notify({"id": "1"})

        assert delivered == [{"id": "1"}]

    async def test_callback_errors_are_swallowed(self, make_handler, fake_sleep) -> None:
        def broken(_payload: Any) -> None:
            raise ValueError("callback bug")

        client = _client(make_handler(200), fake_sleep)
        async with Dispatcher(DictSchema(), config=_config(), client=client, on_success=broken) as d:
            await d.notify({"id": "1"})  # Should not raise

    async def test_flush_without_batching_is_noop(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await d.flush()
        assert handler.requests == []


class TestDispatcherImportanceFilter:
    async def test_important_level_drops_unimportant(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(level=NotificationLevel.IMPORTANT)
        async with Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep)) as d:
            await d.notify({"id": "1", "event": "debug"})
            await d.notify({"id": "2", "type": "deploy"})
            await d.notify({"id": "3"})
            # Filtered events leave no trace in the cache
            assert not d.cache.has("1")

        assert _sent_ids(handler) == ["2", "3"]

    async def test_all_level_sends_everything(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        async with Dispatcher(DictSchema(), config=_config(), client=_client(handler, fake_sleep)) as d:
            await d.notify({"id": "1", "event": "debug"})

        assert len(handler.requests) == 1

    async def test_schema_without_capabilities(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(level="important")
        async with Dispatcher(MinimalSchema(), config=config, client=_client(handler, fake_sleep)) as d:
            await d.notify({"event": "debug"})
            await d.notify({"event": "debug"})

        assert len(handler.requests) == 2
        assert handler.urls == [_DEFAULT_URL, _DEFAULT_URL]


class TestDispatcherBatching:
    async def test_notify_queues_without_sending(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(batch_enabled=True, batch_size=10, batch_interval=60)
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        await d.notify({"id": "1"})
        await d.notify({"id": "2"}, "errors")

        assert d.scheduler.size == 2
        assert handler.requests == []

        await d.flush()
        assert sorted(_sent_ids(handler)) == ["1", "2"]
        assert _ERRORS_URL in handler.urls
        await d.destroy()

    async def test_duplicate_suppressed_while_queued(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(batch_enabled=True, batch_size=10, batch_interval=60)
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        await d.notify({"id": "dup"})
        await d.notify({"id": "dup"})

        assert d.scheduler.size == 1
        await d.destroy()
        assert _sent_ids(handler) == ["dup"]

    async def test_queued_payload_is_a_copy(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(batch_enabled=True, batch_size=10, batch_interval=60)
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        payload = {"id": "1", "text": "original"}
        await d.notify(payload)
        payload["text"] = "changed after notify"
        await d.flush()

        assert json.loads(handler.requests[0].content)["text"] == "original"
        assert payload["text"] == "changed after notify"
        await d.destroy()

    async def test_size_trigger_delivers(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(batch_enabled=True, batch_size=2, batch_interval=60)
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        await d.notify({"id": "1"})
        await d.notify({"id": "2"})
        await asyncio.sleep(0.05)

        assert sorted(_sent_ids(handler)) == ["1", "2"]
        await d.destroy()

    async def test_batch_failures_are_isolated(self, fake_sleep) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if json.loads(request.content)["id"] == "bad":
                return httpx.Response(500)
            return httpx.Response(200)

        errors: list[tuple[Any, Exception]] = []
        delivered: list[Any] = []
        config = _config(batch_enabled=True, batch_size=10, batch_interval=60)
        d = Dispatcher(
            DictSchema(),
            config=config,
            client=_client(handler, fake_sleep, max_attempts=2),
            on_success=delivered.append,
            on_error=lambda p, e: errors.append((p, e)),
        )

        await d.notify({"id": "ok1"})
        await d.notify({"id": "bad"})
        await d.notify({"id": "ok2"})
        await d.flush()  # Should not raise

        assert sorted(p["id"] for p in delivered) == ["ok1", "ok2"]
        assert [p["id"] for p, _ in errors] == ["bad"]
        assert isinstance(errors[0][1], DeliveryError)
        assert d.scheduler.is_flushing is False
        await d.destroy()

    async def test_destroy_flushes_pending(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(batch_enabled=True, batch_size=10, batch_interval=60)
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        await d.notify({"id": "1"})
        await d.notify({"id": "2"})
        await d.destroy()

        assert sorted(_sent_ids(handler)) == ["1", "2"]
        assert d.cache.size == 0

    async def test_destroy_discards_pending(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        config = _config(
            batch_enabled=True, batch_size=10, batch_interval=60, batch_flush_on_destroy=False
        )
        d = Dispatcher(DictSchema(), config=config, client=_client(handler, fake_sleep))

        await d.notify({"id": "1"})
        await d.destroy()

        assert handler.requests == []

    async def test_notify_after_destroy_raises(self) -> None:
        d = Dispatcher(DictSchema(), config=_config(batch_enabled=True))
        await d.destroy()
        await d.destroy()  # idempotent
        with pytest.raises(RuntimeError, match="destroyed"):
            await d.notify({"id": "1"})


class TestDispatcherMetrics:
    async def test_outcomes_counted(self, make_handler, fake_sleep) -> None:
        registry = CollectorRegistry()
        metrics = NotifierMetrics(MetricsCollector(registry))
        config = _config(level="important")
        client = _client(make_handler(200), fake_sleep)
        async with Dispatcher(DictSchema(), config=config, client=client, metrics=metrics) as d:
            await d.notify({"id": "1"})
            await d.notify({"id": "1"})
            await d.notify({"id": "2", "event": "debug"})

        def sample(outcome: str) -> float | None:
            return registry.get_sample_value(
                "chat_notifier_notifications_total", {"outcome": outcome}
            )

        assert sample("delivered") == 1.0
        assert sample("suppressed") == 1.0
        assert sample("filtered") == 1.0


class TestDispatcherResolverInjection:
    async def test_uses_given_resolver(self, make_handler, fake_sleep) -> None:
        handler = make_handler(200)
        resolver = DestinationResolver(named={"only": _ERRORS_URL})
        async with Dispatcher(
            DictSchema(),
            config=NotifierConfig(),
            destinations=resolver,
            client=_client(handler, fake_sleep),
        ) as d:
            await d.notify({"id": "1"}, "only")
            with pytest.raises(ConfigurationError):
                await d.notify({"id": "2"})

        assert handler.urls == [_ERRORS_URL]
