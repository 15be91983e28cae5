"""In-memory expiring key cache used for duplicate suppression."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL = 24 * 60 * 60  # 24 hours in seconds
SWEEP_INTERVAL = 5 * 60  # 5 minutes in seconds


class ExpiringKeyCache:
    """Set of string keys that expire a fixed TTL after being set.

    Expired keys are dropped lazily by :meth:`has` and eagerly by a
    periodic background sweep. Only :meth:`has` matters for correctness;
    the sweep just keeps memory bounded.

    Usage::

        cache = ExpiringKeyCache(ttl=3600)
        if not cache.has(key):
            await deliver()
            cache.set(key)
        await cache.close()
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        *,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Seconds a key stays present after :meth:`set`.
            sweep_interval: Seconds between background sweeps.
            clock: Monotonic time source, overridable for tests.
        """
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, float] = {}  # key -> expiry
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._start_sweeper()

    @property
    def ttl(self) -> float:
        """Time-to-live in seconds."""
        return self._ttl

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def has(self, key: str) -> bool:
        """Check if a key is present and not expired.

        An expired key is removed before returning False.
        """
        expiry = self._entries.get(key)
        if expiry is None:
            return False
        if self._clock() >= expiry:
            del self._entries[key]
            return False
        return True

    def set(self, key: str) -> None:
        """Insert or refresh *key* with a fresh TTL."""
        self._entries[key] = self._clock() + self._ttl
        self._start_sweeper()

    def delete(self, key: str) -> None:
        """Forget *key* if present."""
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, expiry in self._entries.items() if expiry <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired idempotency keys", len(expired))
        return len(expired)

    def destroy(self) -> None:
        """Stop the background sweep and drop all entries (idempotent)."""
        self._closed = True
        if self._task is not None:
            self._task.cancel()
        self._entries.clear()

    async def close(self) -> None:
        """Destroy the cache and wait for the sweep task to finish."""
        task = self._task
        self.destroy()
        self._task = None
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _start_sweeper(self) -> None:
        """Start the sweep task once an event loop is available."""
        if self._closed or self._task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        """Sweep expired entries every *sweep_interval* seconds."""
        while not self._closed:
            try:
                await asyncio.sleep(self._sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Idempotency cache sweep failed")
