"""NotifierError hierarchy — every error raised by the notification pipeline."""

from __future__ import annotations


class NotifierError(Exception):
    """Base error for all notifier operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code string.
    """

    def __init__(self, message: str, *, code: str = "notifier-error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(NotifierError):
    """No usable destination could be resolved. Never retried."""

    def __init__(self, message: str, *, code: str = "configuration-error") -> None:
        super().__init__(message, code=code)


class ValidationError(ConfigurationError):
    """A configured value is malformed (e.g. a non-HTTPS webhook URL)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="validation-error")


class DeliveryError(NotifierError):
    """All delivery attempts to a destination were exhausted.

    Attributes:
        url: Destination the payload was posted to, without its query string.
        attempts: Number of attempts made before giving up.
        status_code: HTTP status of the last response, or None for network errors.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        attempts: int = 0,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code="delivery-error")
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
