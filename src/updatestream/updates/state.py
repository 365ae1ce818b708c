"""Shared runtime state handed to both updaters."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable
from typing import TypeVar

from updatestream.updates.exceptions import UpdaterStopped

T = TypeVar("T")


class Watermark:
    """Highest update identifier already accepted, safe across threads."""

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def advance(self, update_id: int) -> bool:
        """Atomically accept `update_id` if it is above the watermark."""
        with self._lock:
            if update_id <= self._value:
                return False
            self._value = update_id
            return True

    def observe(self, update_id: int) -> None:
        """Raise the watermark without asking for a verdict."""
        with self._lock:
            if update_id > self._value:
                self._value = update_id


class BotState:
    """Stop signal and dedup watermark shared by the updaters."""

    def __init__(self, *, last_update_id: int = 0) -> None:
        self.stop_event = asyncio.Event()
        self.watermark = Watermark(last_update_id)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        """Signal every updater to finish; safe to call more than once."""
        self.stop_event.set()

    async def run_until_stopped(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it with UpdaterStopped if stop is signalled first."""
        call = asyncio.ensure_future(awaitable)
        if self.stop_event.is_set():
            call.cancel()
            await asyncio.gather(call, return_exceptions=True)
            raise UpdaterStopped("stop requested before the call started")

        stop_waiter = asyncio.ensure_future(self.stop_event.wait())
        try:
            await asyncio.wait({call, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()
            if not call.done():
                call.cancel()
                await asyncio.gather(call, return_exceptions=True)

        if call.cancelled() and self.stop_event.is_set():
            raise UpdaterStopped("stop requested while waiting for the call")
        return call.result()

    async def wait_stopped(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if stop was signalled meanwhile."""
        if delay <= 0:
            await asyncio.sleep(0)
            return self.stop_event.is_set()
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True
