"""Configuration — settings and destination resolution."""

from __future__ import annotations

from chat_notifier.config.destinations import DestinationResolver
from chat_notifier.config.settings import NotificationLevel, NotifierConfig

__all__ = ["DestinationResolver", "NotificationLevel", "NotifierConfig"]
