"""Batch scheduler — accumulate notifications and flush by size or interval.

Items are appended to an in-memory queue. A flush swaps the whole queue
out and hands it to the ``on_flush`` coroutine. A flush is triggered:

- when the queue reaches ``size`` items (scheduled as a separate task,
  never run inside ``add``),
- every ``interval`` seconds while the queue is non-empty,
- manually via :meth:`BatchScheduler.flush`,
- once more on :meth:`BatchScheduler.destroy` when ``flush_on_destroy`` is set.

Only one ``on_flush`` call runs at a time. A flush requested while another
is running is a no-op; the items stay queued for the next one.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from typing import TYPE_CHECKING, Any

from chat_notifier.errors.notifier_errors import ValidationError
from chat_notifier.notifications.events import BatchItem

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class BatchScheduler:
    """Queues payloads and flushes them in batches.

    Usage::

        scheduler = BatchScheduler(size=10, interval=5.0, on_flush=send_all)
        scheduler.add(payload, "errors")
        ...
        await scheduler.destroy()
    """

    def __init__(
        self,
        *,
        size: int,
        interval: float,
        on_flush: Callable[[list[BatchItem]], Awaitable[None]],
        flush_on_destroy: bool = True,
    ) -> None:
        """Initialize the scheduler.

        Args:
            size: Queue length that triggers a flush.
            interval: Seconds between timed flushes.
            on_flush: Coroutine receiving each drained batch.
            flush_on_destroy: Deliver leftovers on :meth:`destroy` instead of dropping them.

        Raises:
            ValidationError: If *size* < 1 or *interval* <= 0.
        """
        if size < 1:
            msg = f"Batch size must be >= 1, got {size}"
            raise ValidationError(msg)
        if interval <= 0:
            msg = f"Batch interval must be > 0, got {interval}"
            raise ValidationError(msg)
        self._size = size
        self._interval = interval
        self._on_flush = on_flush
        self._flush_on_destroy = flush_on_destroy

        self._queue: list[BatchItem] = []
        self._flushing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._timer: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._destroyed = False
        self._start_timer()

    @property
    def size(self) -> int:
        """Items waiting in the queue (not yet claimed by a flush)."""
        return len(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def is_flushing(self) -> bool:
        """Whether an ``on_flush`` call is in progress."""
        return self._flushing

    @property
    def is_destroyed(self) -> bool:
        """Whether :meth:`destroy` has been called."""
        return self._destroyed

    def add(self, payload: Any, destination: str | None = None) -> None:
        """Append a deep copy of *payload* to the queue without blocking.

        Later changes the caller makes to *payload* do not reach the batch.

        Raises:
            RuntimeError: If the scheduler has been destroyed.
        """
        if self._destroyed:
            msg = "BatchScheduler has been destroyed"
            raise RuntimeError(msg)
        self._queue.append(BatchItem(payload=copy.deepcopy(payload), destination=destination))
        self._start_timer()
        if len(self._queue) >= self._size:
            self._schedule_flush("size")

    async def flush(self) -> None:
        """Drain the queue into ``on_flush``.

        No-op when the queue is empty or another flush is running.
        Exceptions from ``on_flush`` propagate to the caller.
        """
        if self._flushing or not self._queue:
            return

        batch, self._queue = self._queue, []
        self._flushing = True
        self._idle.clear()
        try:
            logger.debug("Flushing batch of %d notifications", len(batch))
            await self._on_flush(batch)
        finally:
            self._flushing = False
            self._idle.set()

    async def destroy(self) -> None:
        """Stop the timer, then flush or drop whatever is still queued.

        Waits for any in-flight flush instead of cancelling it. Idempotent.
        """
        if self._destroyed:
            return
        self._destroyed = True

        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self._idle.wait()

        if self._flush_on_destroy and self._queue:
            await self.flush()
        else:
            if self._queue:
                logger.warning("Discarding %d queued notifications on shutdown", len(self._queue))
            self._queue = []

    def _start_timer(self) -> None:
        """Start the interval task once an event loop is available."""
        if self._destroyed or self._timer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.create_task(self._timer_loop())

    def _schedule_flush(self, reason: str) -> None:
        """Run a flush on its own task so the caller is never re-entered."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, %s flush deferred", reason)
            return
        task = loop.create_task(self._background_flush(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _background_flush(self, reason: str) -> None:
        try:
            await self.flush()
        except Exception:
            logger.exception("Background %s flush failed", reason)

    async def _timer_loop(self) -> None:
        """Request a flush every *interval* seconds while items are queued."""
        while not self._destroyed:
            await asyncio.sleep(self._interval)
            if self._queue and not self._destroyed:
                self._schedule_flush("interval")
