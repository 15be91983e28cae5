"""Webhook delivery — POST a card payload with exponential-backoff retries."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from chat_notifier.errors.notifier_errors import DeliveryError, ValidationError
from chat_notifier.notifications.events import DeliveryResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chat_notifier.metrics.collector import NotifierMetrics

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds per attempt
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF = 0.3  # seconds

_HEADERS = {"Content-Type": "application/json; charset=UTF-8"}


class WebhookClient:
    """Delivers a JSON payload to a webhook URL, retrying transient failures.

    Every network error and every non-2xx response counts as a failed
    attempt. Between attempts the client sleeps
    ``initial_backoff * 2 ** (attempt - 1)`` seconds; there is no sleep
    after the last attempt.

    Usage::

        client = WebhookClient(timeout=5.0, max_attempts=3)
        try:
            result = await client.post(url, card)
        finally:
            await client.close()
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: NotifierMetrics | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Per-attempt timeout in seconds.
            max_attempts: Total attempts, first one included. Must be >= 1.
            initial_backoff: Delay before the second attempt, doubled each time.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
            sleep: Coroutine used for backoff delays.
            metrics: Optional metrics sink for per-attempt counters.

        Raises:
            ValidationError: If *max_attempts* is less than 1.
        """
        if max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {max_attempts}"
            raise ValidationError(msg)
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff
        self._transport = transport
        self._sleep = sleep
        self._metrics = metrics
        self._client: httpx.AsyncClient | None = None

    @property
    def max_attempts(self) -> int:
        """Total attempts per delivery."""
        return self._max_attempts

    @property
    def is_connected(self) -> bool:
        """Whether the underlying HTTP client is open."""
        return self._client is not None

    def backoff(self, attempt: int) -> float:
        """Delay after failed *attempt* (1-based)."""
        return self._initial_backoff * 2 ** (attempt - 1)

    async def close(self) -> None:
        """Close the underlying HTTP client (idempotent)."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def post(self, url: str, payload: Any) -> DeliveryResult:
        """POST *payload* as JSON to *url*.

        Returns:
            DeliveryResult for the first 2xx response.

        Raises:
            DeliveryError: After the last attempt fails, carrying the last error.
        """
        client = self._ensure_client()
        logger.debug("Webhook request to %s: %s", _redact(url), payload)

        last_error = "Max retries reached"
        last_status: int | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                resp = await client.post(url, json=payload, headers=_HEADERS)
            except httpx.HTTPError as exc:
                last_error = str(exc) or type(exc).__name__
                last_status = None
                logger.warning(
                    "Webhook %s error: %s (attempt %d/%d)",
                    _redact(url),
                    last_error,
                    attempt,
                    self._max_attempts,
                )
            else:
                logger.debug(
                    "Webhook response %d %s: %s",
                    resp.status_code,
                    resp.reason_phrase,
                    resp.text,
                )
                if resp.is_success:
                    self._record_attempt(ok=True)
                    return DeliveryResult(
                        ok=True,
                        status_code=resp.status_code,
                        reason_phrase=resp.reason_phrase,
                        body=resp.text,
                        attempts=attempt,
                    )
                last_error = f"HTTP {resp.status_code}: {resp.reason_phrase}"
                last_status = resp.status_code
                logger.warning(
                    "Webhook %s returned %d (attempt %d/%d)",
                    _redact(url),
                    resp.status_code,
                    attempt,
                    self._max_attempts,
                )

            self._record_attempt(ok=False)
            if attempt < self._max_attempts:
                await self._sleep(self.backoff(attempt))

        raise DeliveryError(
            last_error,
            url=_redact(url),
            attempts=self._max_attempts,
            status_code=last_status,
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        """Create the HTTP client on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    def _record_attempt(self, *, ok: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_attempt(ok=ok)


def _redact(url: str) -> str:
    """Strip the query string, which carries webhook keys and tokens."""
    return url.split("?", 1)[0]
