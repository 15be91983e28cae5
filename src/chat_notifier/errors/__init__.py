"""Errors raised by the notifier."""

from __future__ import annotations

from chat_notifier.errors.notifier_errors import (
    ConfigurationError,
    DeliveryError,
    NotifierError,
    ValidationError,
)

__all__ = ["ConfigurationError", "DeliveryError", "NotifierError", "ValidationError"]
