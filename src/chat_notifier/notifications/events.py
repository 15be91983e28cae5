"""Value types passed through the delivery pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class BatchItem:
    """A queued payload and the destination it should go to (None = default)."""

    payload: Any
    destination: str | None = None


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a successful webhook delivery."""

    ok: bool
    status_code: int
    reason_phrase: str = ""
    body: str = ""
    attempts: int = 1
