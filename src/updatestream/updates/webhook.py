"""Webhook acquisition: an HTTP listener that receives pushed updates."""

import asyncio
import contextlib
import hmac
import logging
import socket
from typing import Annotated

import uvicorn
from fastapi import FastAPI, Header, Request
from pydantic import ValidationError

from updatestream.core.observability import log_event
from updatestream.updates.dispatch import Dispatcher
from updatestream.updates.exceptions import WebhookBindError
from updatestream.updates.schemas import Update
from updatestream.updates.state import BotState

logger = logging.getLogger(__name__)
SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"
WEBHOOK_ACK = {"ok": True}


def create_webhook_app(
    *,
    dispatcher: Dispatcher,
    state: BotState,
    secret_token: str | None = "",
    path: str = "/",
) -> FastAPI:
    """Build the ASGI app exposing the single update route."""
    expected_secret = secret_token or ""
    if not expected_secret:
        log_event(logger, event="updater.webhook.secret_missing", level=logging.WARNING, path=path)
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.post(path)
    async def receive_update(
        request: Request,
        webhook_secret: Annotated[str | None, Header(alias=SECRET_TOKEN_HEADER)] = None,
    ) -> dict[str, bool]:
        """Accept one pushed update; every outcome is acknowledged with 200."""
        if expected_secret and not hmac.compare_digest(
            (webhook_secret or "").encode(), expected_secret.encode()
        ):
            # Unauthenticated callers learn nothing about the check.
            return WEBHOOK_ACK

        body = await request.body()
        try:
            update = Update.model_validate_json(body)
        except ValidationError as exc:
            log_event(
                logger,
                level=logging.WARNING,
                event="updater.webhook.decode_failed",
                error_count=exc.error_count(),
                body_bytes=len(body),
            )
            return WEBHOOK_ACK

        if not state.watermark.advance(update.update_id):
            logger.debug(
                "Discarding update %s at or below watermark %s",
                update.update_id,
                state.watermark.value,
            )
            return WEBHOOK_ACK

        dispatcher.dispatch(update)
        return WEBHOOK_ACK

    app.state.dispatcher = dispatcher
    app.state.bot_state = state
    return app


def bind_listener(host: str, port: int) -> socket.socket:
    """Bind and listen on host:port, raising WebhookBindError on failure."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        sock = socket.create_server((host, port), family=family)
    except OSError as exc:
        raise WebhookBindError(host, port, exc) from exc
    sock.set_inheritable(True)
    return sock


class WebhookUpdater:
    """Serve the webhook app until stopped."""

    def __init__(
        self,
        *,
        dispatcher: Dispatcher,
        state: BotState,
        secret_token: str | None = "",
        path: str = "/",
    ) -> None:
        self._state = state
        self.app = create_webhook_app(
            dispatcher=dispatcher,
            state=state,
            secret_token=secret_token,
            path=path,
        )
        self._server: uvicorn.Server | None = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.started

    async def start(self, host: str, port: int) -> None:
        """Bind host:port and serve until stop() or the shared stop signal."""
        sock = bind_listener(host, port)
        bound_host, bound_port = sock.getsockname()[:2]
        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        server = uvicorn.Server(config)
        self._server = server
        stop_watcher = asyncio.create_task(self._exit_on_stop(server))
        log_event(logger, event="updater.webhook.started", host=bound_host, port=bound_port)
        try:
            await server.serve(sockets=[sock])
        finally:
            stop_watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stop_watcher
            sock.close()
            self._server = None
            log_event(logger, event="updater.webhook.stopped", host=bound_host, port=bound_port)

    def stop(self) -> None:
        """Ask the listener to shut down."""
        if self._server is not None:
            self._server.should_exit = True

    async def _exit_on_stop(self, server: uvicorn.Server) -> None:
        await self._state.stop_event.wait()
        server.should_exit = True
