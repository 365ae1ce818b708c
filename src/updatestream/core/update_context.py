"""Per-update context values used for log correlation."""

from __future__ import annotations

from contextvars import ContextVar, Token

_UPDATE_ID: ContextVar[int | None] = ContextVar("updatestream_update_id", default=None)


def get_update_id() -> int | None:
    """Return the update currently being handled, if any."""
    return _UPDATE_ID.get()


def set_update_id(update_id: int) -> Token[int | None]:
    """Bind an update identifier to the current context and return the reset token."""
    return _UPDATE_ID.set(update_id)


def reset_update_id(token: Token[int | None]) -> None:
    _UPDATE_ID.reset(token)
