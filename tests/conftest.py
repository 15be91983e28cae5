"""Shared test fixtures for the chat-notifier test suite."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import httpx
import pytest

if TYPE_CHECKING:
    from chat_notifier.config.settings import NotifierConfig

DEFAULT_URL = "https://chat.googleapis.com/v1/spaces/DEFAULT/messages?key=k"
ERRORS_URL = "https://chat.googleapis.com/v1/spaces/ERRORS/messages?key=k"


@pytest.fixture(autouse=True)
def _clean_chat_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's CHAT_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("CHAT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def app_config() -> NotifierConfig:
    """Provide a NotifierConfig with one default and one named webhook."""
    from chat_notifier.config.settings import NotifierConfig

    return NotifierConfig(
        webhook_url=DEFAULT_URL,
        webhooks={"errors": ERRORS_URL},
        retry_base_delay=0.0,
    )


class RecordingHandler:
    """httpx MockTransport handler that records requests and replays statuses.

    Statuses are consumed in order; the last one repeats.
    """

    def __init__(self, *statuses: int) -> None:
        self._statuses = list(statuses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._statuses)) - 1
        return httpx.Response(self._statuses[index], text="{}")

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_handler() -> type[RecordingHandler]:
    """Factory for RecordingHandler instances."""
    return RecordingHandler
