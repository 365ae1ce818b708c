from __future__ import annotations

from typing import Any

import httpx

from updatestream.updates.exceptions import BotApiError
from updatestream.updates.schemas import UPDATE_LIST_ADAPTER, PollingOptions, Update

DEFAULT_API_BASE_URL = "https://api.telegram.org"


class BotApiClient:
    """Minimal async Bot API transport; only what update acquisition needs."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        request_timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("Bot API token must not be blank")
        self._request_timeout_seconds = request_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            timeout=request_timeout_seconds,
            transport=transport,
        )

    @staticmethod
    def _raise_for_result(method: str, response: httpx.Response) -> Any:
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise
        if isinstance(data, dict) and data.get("ok") is False:
            parameters = data.get("parameters") or {}
            raise BotApiError(
                method,
                str(data.get("description", "unknown error")),
                error_code=data.get("error_code"),
                retry_after=parameters.get("retry_after"),
            )
        response.raise_for_status()
        if not isinstance(data, dict):
            raise ValueError(f"Telegram {method} returned a non-object body")
        return data.get("result")

    async def call(
        self,
        method: str,
        payload: dict[str, object] | None = None,
        *,
        timeout: httpx.Timeout | float | None = None,
    ) -> Any:
        """POST one Bot API method and return its `result` field."""
        request_timeout = timeout if timeout is not None else self._request_timeout_seconds
        response = await self._client.post(f"/{method}", json=payload or {}, timeout=request_timeout)
        return self._raise_for_result(method, response)

    async def get_updates(self, options: PollingOptions) -> list[Update]:
        # The read timeout must outlast the server-side long-poll wait.
        timeout = httpx.Timeout(
            self._request_timeout_seconds,
            read=options.timeout + self._request_timeout_seconds,
        )
        result = await self.call("getUpdates", options.to_params(), timeout=timeout)
        return UPDATE_LIST_ADAPTER.validate_python(result or [])

    async def aclose(self) -> None:
        await self._client.aclose()
