"""Telegram update payloads and getUpdates request options."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

DEFAULT_POLL_TIMEOUT_SECONDS = 10.0
MAX_UPDATES_PER_REQUEST = 100


class Update(BaseModel):
    """One Telegram update; everything except `update_id` is forwarded untouched."""

    model_config = ConfigDict(frozen=True, extra="allow")

    update_id: int

    @property
    def payload(self) -> dict[str, Any]:
        """Top-level update fields other than `update_id`."""
        return dict(self.model_extra or {})

    @property
    def kind(self) -> str | None:
        """Name of the update type, e.g. `message` or `callback_query`."""
        for key in self.model_extra or {}:
            return key
        return None


UPDATE_LIST_ADAPTER = TypeAdapter(list[Update])


class PollingOptions(BaseModel):
    """Cursor state for one long-polling loop."""

    offset: int = 0
    limit: int | None = Field(default=None, ge=1, le=MAX_UPDATES_PER_REQUEST)
    timeout: float = Field(default=DEFAULT_POLL_TIMEOUT_SECONDS, ge=0)
    allowed_updates: list[str] | None = None
    drop_pending_updates: bool = False

    @field_validator("timeout", mode="before")
    @classmethod
    def default_timeout(cls, value: float | None) -> float:
        """Treat a missing timeout as the default long-poll wait."""
        if value is None:
            return DEFAULT_POLL_TIMEOUT_SECONDS
        return value

    @field_validator("timeout")
    @classmethod
    def reject_sub_second_timeout(cls, value: float) -> float:
        """The Bot API takes whole seconds; 0 < timeout < 1 would silently disable long polling."""
        if 0 < value < 1:
            raise ValueError("timeout must be 0 or at least 1 second")
        return value

    def to_params(self) -> dict[str, object]:
        """Render the getUpdates request body, omitting unset values."""
        params: dict[str, object] = {}
        if self.offset:
            params["offset"] = self.offset
        if self.limit is not None:
            params["limit"] = self.limit
        timeout_seconds = int(self.timeout)
        if timeout_seconds:
            params["timeout"] = timeout_seconds
        if self.allowed_updates is not None:
            params["allowed_updates"] = list(self.allowed_updates)
        return params
