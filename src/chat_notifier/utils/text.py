"""Text helpers."""

from __future__ import annotations

ELLIPSIS = "…"


def truncate_message(text: str, max_length: int) -> str:
    """Cut *text* to at most *max_length* characters, ending in an ellipsis.

    Text that already fits is returned unchanged. A limit of 1 or less
    yields just the ellipsis character.
    """
    if len(text) <= max_length:
        return text
    if max_length <= 1:
        return ELLIPSIS
    return text[: max_length - 1] + ELLIPSIS
