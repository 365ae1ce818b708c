import asyncio
import contextlib
import logging
import signal

from updatestream.bot import Bot
from updatestream.core.config import Settings, get_settings
from updatestream.core.logging import configure_logging
from updatestream.core.observability import log_event
from updatestream.updates.dispatch import UpdateHandler
from updatestream.updates.schemas import Update

logger = logging.getLogger(__name__)
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def log_update(update: Update) -> None:
    """Default handler: record that an update arrived."""
    log_event(logger, event="update.received", kind=update.kind)


def _install_stop_signals(bot: Bot) -> None:
    loop = asyncio.get_running_loop()
    for sig in STOP_SIGNALS:
        # Not available on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, bot.stop)


async def run(settings: Settings | None = None, handler: UpdateHandler | None = None) -> None:
    """Run the configured updater until a stop signal arrives."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    bot = Bot.from_settings(settings, handler or log_update)
    _install_stop_signals(bot)
    log_event(logger, event="bot.starting", app=settings.app_name, mode=settings.update_mode)
    try:
        if settings.update_mode == "webhook":
            await bot.run_webhook()
        else:
            await bot.run_polling()
    finally:
        await bot.shutdown()
        log_event(logger, event="bot.stopped", app=settings.app_name)


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
