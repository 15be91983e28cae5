"""Destination resolution — map destination names to Google Chat webhook URLs.

A resolver holds an optional default webhook plus any number of named ones.
Named webhooks that are requested but missing fall back to the default.
Tokens may be kept apart from the URL and are appended as ``token=<value>``.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from chat_notifier.errors.notifier_errors import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from chat_notifier.config.settings import NotifierConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHAT_WEBHOOK_"
_DEFAULT_URL_VAR = "URL"
_DEFAULT_TOKEN_VAR = "TOKEN"
_TOKEN_SUFFIX = "_TOKEN"
_CHAT_HOST = "chat.googleapis.com"


def validate_webhook_url(url: str) -> str:
    """Return *url* if it looks like a Google Chat webhook.

    Raises:
        ValidationError: If the URL is empty, not HTTPS, or not a Chat URL.
    """
    if not url:
        msg = "Webhook URL cannot be empty"
        raise ValidationError(msg)
    if not url.startswith("https://"):
        msg = f"Webhook URL must use HTTPS protocol: {url[:50]}..."
        raise ValidationError(msg)
    if _CHAT_HOST not in url:
        msg = f"Invalid Google Chat webhook URL: {url[:50]}..."
        raise ValidationError(msg)
    return url


def build_url(base_url: str, token: str = "") -> str:
    """Append ``token=<token>`` to *base_url* unless it already carries one."""
    if not token or "token=" in base_url:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}token={token}"


class DestinationResolver:
    """Resolves destination names to validated webhook URLs.

    Usage::

        resolver = DestinationResolver(
            default="https://chat.googleapis.com/v1/spaces/X/messages?key=K",
            named={"errors": "https://chat.googleapis.com/v1/spaces/Y/messages?key=K"},
        )
        resolver.resolve("errors")
        resolver.resolve("unknown")  # falls back to the default
    """

    def __init__(self, default: str | None = None, named: Mapping[str, str] | None = None) -> None:
        """Validate and store the destinations.

        Raises:
            ValidationError: If any URL is malformed.
            ConfigurationError: If neither a default nor a named destination is given.
        """
        self._default = validate_webhook_url(default) if default else None
        self._named: dict[str, str] = {
            name.lower(): validate_webhook_url(url) for name, url in (named or {}).items()
        }
        if self._default is None and not self._named:
            msg = "No webhook configured. Provide CHAT_WEBHOOK_URL or named webhooks."
            raise ConfigurationError(msg)

    @property
    def default(self) -> str | None:
        """The default webhook URL, if any."""
        return self._default

    @property
    def names(self) -> list[str]:
        """All configured destination names."""
        return list(self._named)

    def has(self, name: str) -> bool:
        """Whether a named destination exists."""
        return name.lower() in self._named

    def resolve(self, name: str | None = None) -> str:
        """Return the webhook URL for *name*, falling back to the default.

        Raises:
            ConfigurationError: If nothing can be resolved.
        """
        if not name:
            if self._default is None:
                msg = "No default webhook configured"
                raise ConfigurationError(msg)
            return self._default

        url = self._named.get(name.lower())
        if url is not None:
            return url
        if self._default is not None:
            logger.debug("Destination %r not configured, using default webhook", name)
            return self._default
        msg = f"Webhook '{name}' not found and no default webhook configured"
        raise ConfigurationError(msg)

    @classmethod
    def from_config(
        cls,
        config: NotifierConfig,
        environ: Mapping[str, str] | None = None,
    ) -> DestinationResolver:
        """Build a resolver from ``NotifierConfig`` webhook settings.

        Named ``CHAT_WEBHOOK_<NAME>`` variables are picked up as well;
        ``config.webhooks`` wins when both define the same name.
        """
        env = os.environ if environ is None else environ
        default = build_url(config.webhook_url, config.webhook_token) if config.webhook_url else None
        named = {**_named_from_env(env, ENV_PREFIX), **config.webhooks}
        return cls(default=default, named=named)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str = ENV_PREFIX,
    ) -> DestinationResolver:
        """Build a resolver from ``CHAT_WEBHOOK_*`` environment variables.

        ``CHAT_WEBHOOK_URL`` (+ ``CHAT_WEBHOOK_TOKEN``) is the default.
        Every other ``CHAT_WEBHOOK_<NAME>`` is a named destination, with an
        optional ``CHAT_WEBHOOK_<NAME>_TOKEN``.
        """
        env = os.environ if environ is None else environ
        default_var = prefix + _DEFAULT_URL_VAR
        token_var = prefix + _DEFAULT_TOKEN_VAR

        default = None
        if env.get(default_var):
            default = build_url(env[default_var], env.get(token_var, ""))

        return cls(default=default, named=_named_from_env(env, prefix))


def _named_from_env(env: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Collect ``<prefix><NAME>`` destinations, skipping the default and token vars."""
    reserved = (prefix + _DEFAULT_URL_VAR, prefix + _DEFAULT_TOKEN_VAR)
    named: dict[str, str] = {}
    for key, url in env.items():
        if not key.startswith(prefix) or key in reserved:
            continue
        if key.endswith(_TOKEN_SUFFIX) or not url:
            continue
        name = key.removeprefix(prefix).lower()
        named[name] = build_url(url, env.get(key + _TOKEN_SUFFIX, ""))
    return named
