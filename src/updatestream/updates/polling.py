"""Long-polling acquisition loop for getUpdates."""

import asyncio
import logging
import random
from typing import Protocol

from updatestream.core.observability import log_event
from updatestream.updates.dispatch import Dispatcher
from updatestream.updates.exceptions import TRANSIENT_EXCEPTIONS, BotApiError, UpdaterStopped
from updatestream.updates.schemas import DEFAULT_POLL_TIMEOUT_SECONDS, PollingOptions, Update
from updatestream.updates.state import BotState

logger = logging.getLogger(__name__)
MAX_BACKOFF_EXPONENT = 32


class UpdateSource(Protocol):
    """Anything that can answer a getUpdates request."""

    async def get_updates(self, options: PollingOptions) -> list[Update]:
        """Return pending updates at or after `options.offset`."""


class PollingUpdater:
    """Fetch updates in a loop, advancing the offset past everything seen."""

    def __init__(
        self,
        *,
        source: UpdateSource,
        dispatcher: Dispatcher,
        state: BotState,
        options: PollingOptions | None = None,
        retry_initial_delay_seconds: float = 0.5,
        retry_max_delay_seconds: float = 30.0,
        retry_jitter_ratio: float = 0.1,
    ) -> None:
        """Initialize cursor state and retry policy."""
        if retry_initial_delay_seconds < 0:
            raise ValueError("retry_initial_delay_seconds must be >= 0")
        if retry_max_delay_seconds < retry_initial_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_initial_delay_seconds")
        if not 0 <= retry_jitter_ratio <= 1:
            raise ValueError("retry_jitter_ratio must be between 0 and 1")

        options = options.model_copy() if options is not None else PollingOptions()
        if options.timeout == 0:
            options.timeout = DEFAULT_POLL_TIMEOUT_SECONDS

        self._source = source
        self._dispatcher = dispatcher
        self._state = state
        self._options = options
        self._retry_initial_delay_seconds = retry_initial_delay_seconds
        self._retry_max_delay_seconds = retry_max_delay_seconds
        self._retry_jitter_ratio = retry_jitter_ratio

    @property
    def offset(self) -> int:
        """Next update identifier this loop will ask for."""
        return self._options.offset

    async def run(self) -> None:
        """Poll until the shared stop signal fires."""
        if self._options.drop_pending_updates:
            try:
                await self._drop_pending_updates()
            except UpdaterStopped:
                log_event(logger, event="updater.polling.stopped", offset=self._options.offset)
                return

        log_event(
            logger,
            event="updater.polling.started",
            offset=self._options.offset,
            limit=self._options.limit,
            timeout_seconds=self._options.timeout,
            allowed_updates=self._options.allowed_updates,
        )
        consecutive_failures = 0
        while True:
            try:
                updates = await self._state.run_until_stopped(
                    self._source.get_updates(self._options)
                )
            except UpdaterStopped:
                log_event(logger, event="updater.polling.stopped", offset=self._options.offset)
                return
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                consecutive_failures += 1
                # Unexpected errors point at a bug rather than a flaky network; both are retried.
                level = logging.ERROR if isinstance(exc, TRANSIENT_EXCEPTIONS) else logging.CRITICAL
                logger.log(
                    level,
                    "getUpdates failed at offset %s (attempt %s)",
                    self._options.offset,
                    consecutive_failures,
                    exc_info=True,
                )
                if await self._state.wait_stopped(self._retry_delay(consecutive_failures, exc)):
                    log_event(logger, event="updater.polling.stopped", offset=self._options.offset)
                    return
                continue

            consecutive_failures = 0
            self._accept_batch(updates)

    async def _drop_pending_updates(self) -> None:
        """Skip the backlog by jumping the offset past the newest pending update."""
        priming = PollingOptions(offset=-1, limit=1, timeout=0)
        try:
            updates = await self._state.run_until_stopped(self._source.get_updates(priming))
        except UpdaterStopped:
            raise
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Failed to drop pending updates; polling from offset %s", self._options.offset)
            return

        if not updates:
            return
        last_update_id = updates[0].update_id
        self._options.offset = max(self._options.offset, last_update_id + 1)
        self._state.watermark.observe(last_update_id)
        log_event(
            logger,
            event="updater.polling.pending_dropped",
            last_update_id=last_update_id,
            offset=self._options.offset,
        )

    def _accept_batch(self, updates: list[Update]) -> None:
        if not updates:
            logger.debug("Long poll returned no updates at offset %s", self._options.offset)
            return

        dispatched = 0
        for update in sorted(updates, key=lambda item: item.update_id):
            if update.update_id < self._options.offset:
                logger.debug(
                    "Skipping update %s below offset %s", update.update_id, self._options.offset
                )
                continue
            self._options.offset = update.update_id + 1
            self._state.watermark.observe(update.update_id)
            self._dispatcher.dispatch(update)
            dispatched += 1

        log_event(
            logger,
            level=logging.DEBUG,
            event="updater.polling.batch",
            received=len(updates),
            dispatched=dispatched,
            offset=self._options.offset,
        )

    def _retry_delay(self, consecutive_failures: int, exc: BaseException) -> float:
        """Exponential backoff with cap and jitter; 0 when backoff is disabled."""
        retry_after = exc.retry_after if isinstance(exc, BotApiError) else None
        delay = 0.0
        if self._retry_initial_delay_seconds > 0:
            exponent = min(consecutive_failures - 1, MAX_BACKOFF_EXPONENT)
            delay = min(
                self._retry_max_delay_seconds,
                self._retry_initial_delay_seconds * 2**exponent,
            )
            delay += random.uniform(0, delay * self._retry_jitter_ratio)
        if retry_after:
            delay = max(delay, float(retry_after))
        return delay
