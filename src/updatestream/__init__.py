"""Telegram update acquisition over long polling or webhooks."""

from updatestream.bot import Bot
from updatestream.updates import (
    BotApiClient,
    BotState,
    Dispatcher,
    PollingOptions,
    PollingUpdater,
    Update,
    WebhookUpdater,
)

__all__ = [
    "Bot",
    "BotApiClient",
    "BotState",
    "Dispatcher",
    "PollingOptions",
    "PollingUpdater",
    "Update",
    "WebhookUpdater",
]
