"""Update acquisition and dispatch engine."""

from updatestream.updates.client import BotApiClient
from updatestream.updates.dispatch import Dispatcher, UpdateHandler
from updatestream.updates.exceptions import (
    BotApiError,
    UpdaterError,
    UpdaterStopped,
    WebhookBindError,
)
from updatestream.updates.polling import PollingUpdater, UpdateSource
from updatestream.updates.schemas import PollingOptions, Update
from updatestream.updates.state import BotState, Watermark
from updatestream.updates.webhook import WebhookUpdater, create_webhook_app

__all__ = [
    "BotApiClient",
    "BotApiError",
    "BotState",
    "Dispatcher",
    "PollingOptions",
    "PollingUpdater",
    "Update",
    "UpdateHandler",
    "UpdateSource",
    "UpdaterError",
    "UpdaterStopped",
    "Watermark",
    "WebhookBindError",
    "WebhookUpdater",
    "create_webhook_app",
]
