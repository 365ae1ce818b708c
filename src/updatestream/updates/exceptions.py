"""Exception types and shared exception tuples for update acquisition."""

import httpx


class UpdaterError(Exception):
    """Base class for update acquisition failures."""


class BotApiError(UpdaterError):
    """The Bot API answered a call with `ok: false`."""

    def __init__(
        self,
        method: str,
        description: str,
        *,
        error_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(f"Telegram {method} failed ({error_code}): {description}")
        self.method = method
        self.description = description
        self.error_code = error_code
        self.retry_after = retry_after


class UpdaterStopped(UpdaterError):
    """The shared stop signal interrupted a blocking call."""


class WebhookBindError(UpdaterError):
    """The webhook listener could not bind its address."""

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        super().__init__(f"Failed to bind webhook listener on {host}:{port}: {cause}")
        self.host = host
        self.port = port


# ValueError covers malformed JSON and pydantic ValidationError.
TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    BotApiError,
    ValueError,
    OSError,
)
