"""Notifier settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Keyword arguments passed to ``NotifierConfig(...)``
2. Environment variables (prefix: ``CHAT_``)
3. YAML config file (``config_path`` argument or ``CHAT_CONFIG_PATH`` env var)
4. Defaults defined here

The resulting object is built once at startup and handed to the
``Dispatcher``; nothing in the pipeline reads the environment afterwards.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationLevel(enum.StrEnum):
    """Which events get delivered."""

    ALL = "all"
    IMPORTANT = "important"


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class NotifierConfig(BaseSettings):
    """Top-level notifier configuration.

    Durations are in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        case_sensitive=False,
    )

    config_path: str = ""

    # Destinations
    webhook_url: str = ""
    webhook_token: str = ""
    webhooks: dict[str, str] = Field(default_factory=dict)

    # Formatting and filtering
    level: NotificationLevel = NotificationLevel.ALL
    max_message: int = Field(default=4000, ge=1)

    # Delivery
    timeout: float = Field(default=10.0, gt=0)
    retry_max: int = Field(default=3, ge=1, description="Attempts per delivery, first one included")
    retry_base_delay: float = Field(default=0.3, ge=0)

    # Idempotency
    idempotency_enabled: bool = True
    idempotency_ttl: float = Field(default=24 * 60 * 60, gt=0)

    # Batching
    batch_enabled: bool = False
    batch_size: int = Field(default=10, ge=1)
    batch_interval: float = Field(default=5.0, gt=0)
    batch_flush_on_destroy: bool = True

    @field_validator("webhooks", mode="after")
    @classmethod
    def _lowercase_names(cls, value: dict[str, str]) -> dict[str, str]:
        """Destination names are matched case-insensitively."""
        return {name.lower(): url for name, url in value.items()}

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``NotifierConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
