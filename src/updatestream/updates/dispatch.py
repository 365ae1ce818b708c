"""Concurrent hand-off of accepted updates to the handler layer."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from updatestream.core.observability import log_event
from updatestream.core.update_context import reset_update_id, set_update_id
from updatestream.updates.schemas import Update

logger = logging.getLogger(__name__)

UpdateHandler = Callable[[Update], Awaitable[None] | None]


def _is_async_handler(handler: UpdateHandler) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    return inspect.iscoroutinefunction(getattr(handler, "__call__", None))


class Dispatcher:
    """Launch one independent task per accepted update and keep track of them."""

    def __init__(self, handler: UpdateHandler, *, max_concurrency: int | None = None) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._handler = handler
        self._handler_is_async = _is_async_handler(handler)
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of handler tasks that have not finished yet."""
        return len(self._tasks)

    def dispatch(self, update: Update) -> asyncio.Task[None]:
        """Schedule the handler for `update` and return without waiting for it."""
        task = asyncio.create_task(
            self._invoke(update),
            name=f"updatestream-dispatch-{update.update_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _invoke(self, update: Update) -> None:
        token = set_update_id(update.update_id)
        try:
            if self._semaphore is None:
                await self._call_handler(update)
            else:
                async with self._semaphore:
                    await self._call_handler(update)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Update handler failed for update %s", update.update_id)
        finally:
            reset_update_id(token)

    async def _call_handler(self, update: Update) -> None:
        if self._handler_is_async:
            await self._handler(update)
            return
        # Plain callables run off the loop so blocking I/O cannot stall acquisition.
        result = await asyncio.to_thread(self._handler, update)
        if inspect.isawaitable(result):
            await result

    async def drain(self, timeout: float) -> None:
        """Wait up to `timeout` seconds for in-flight handlers, then cancel the rest."""
        pending = set(self._tasks)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if not still_running:
            return
        log_event(
            logger,
            level=logging.WARNING,
            event="dispatch.drain.timeout",
            cancelled=len(still_running),
            timeout_seconds=timeout,
        )
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
