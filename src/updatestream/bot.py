"""Wiring of transport, shared state, dispatcher and updaters."""

import logging

from updatestream.core.config import Settings
from updatestream.core.observability import log_event
from updatestream.updates.client import BotApiClient
from updatestream.updates.dispatch import Dispatcher, UpdateHandler
from updatestream.updates.polling import PollingUpdater
from updatestream.updates.schemas import PollingOptions
from updatestream.updates.state import BotState
from updatestream.updates.webhook import WebhookUpdater

logger = logging.getLogger(__name__)


class Bot:
    """One bot account: its Bot API client, stop signal and handler dispatcher."""

    def __init__(
        self,
        *,
        client: BotApiClient,
        handler: UpdateHandler,
        settings: Settings,
        state: BotState | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.state = state or BotState()
        self.dispatcher = Dispatcher(handler, max_concurrency=settings.max_concurrent_handlers)

    @classmethod
    def from_settings(cls, settings: Settings, handler: UpdateHandler) -> "Bot":
        """Build a bot from settings; TELEGRAM_BOT_TOKEN must be set."""
        if settings.telegram_bot_token is None:
            raise RuntimeError("TELEGRAM_BOT_TOKEN is required to run the updater")
        client = BotApiClient(
            settings.telegram_bot_token.get_secret_value(),
            base_url=settings.telegram_api_base_url,
            request_timeout_seconds=settings.telegram_request_timeout_seconds,
        )
        return cls(client=client, handler=handler, settings=settings)

    def polling_options(self) -> PollingOptions:
        return PollingOptions(
            offset=self.settings.polling_offset,
            limit=self.settings.polling_limit,
            timeout=self.settings.polling_timeout_seconds,
            allowed_updates=self.settings.allowed_updates,
            drop_pending_updates=self.settings.polling_drop_pending_updates,
        )

    def polling_updater(self, options: PollingOptions | None = None) -> PollingUpdater:
        return PollingUpdater(
            source=self.client,
            dispatcher=self.dispatcher,
            state=self.state,
            options=options or self.polling_options(),
            retry_initial_delay_seconds=self.settings.polling_retry_initial_delay_seconds,
            retry_max_delay_seconds=self.settings.polling_retry_max_delay_seconds,
            retry_jitter_ratio=self.settings.polling_retry_jitter_ratio,
        )

    def webhook_updater(self) -> WebhookUpdater:
        return WebhookUpdater(
            dispatcher=self.dispatcher,
            state=self.state,
            secret_token=self.settings.webhook_secret_token,
            path=self.settings.webhook_path,
        )

    async def run_polling(self, options: PollingOptions | None = None) -> None:
        await self.polling_updater(options).run()

    async def run_webhook(self, host: str | None = None, port: int | None = None) -> None:
        if not self.settings.webhook_secret_token:
            logger.warning(
                "TELEGRAM_WEBHOOK_SECRET is not configured; webhook updates are accepted "
                "without authentication"
            )
        await self.webhook_updater().start(
            host if host is not None else self.settings.webhook_host,
            port if port is not None else self.settings.webhook_port,
        )

    def stop(self) -> None:
        """Signal every running updater to finish."""
        if not self.state.stopped:
            log_event(logger, event="bot.stop_requested")
        self.state.stop()

    async def shutdown(self) -> None:
        """Stop, drain in-flight handlers and release the HTTP client."""
        self.stop()
        try:
            await self.dispatcher.drain(self.settings.shutdown_drain_timeout_seconds)
        finally:
            await self.client.aclose()
