import asyncio
from collections.abc import Iterable

from updatestream.updates.schemas import PollingOptions, Update
from updatestream.updates.state import BotState


def make_update(update_id: int, text: str = "hello") -> Update:
    """Build a minimal message update."""
    return Update.model_validate(
        {
            "update_id": update_id,
            "message": {"message_id": update_id, "text": text, "chat": {"id": 42}},
        }
    )


class ScriptedSource:
    """Fake getUpdates endpoint replaying a fixed script of batches and errors.

    Once the script is exhausted the next call signals stop on `state` and then
    blocks like a long poll that never returns.
    """

    def __init__(self, state: BotState, steps: Iterable[list[Update] | Exception]) -> None:
        self._state = state
        self._steps = list(steps)
        self.calls: list[PollingOptions] = []
        self.cancelled_calls = 0

    async def get_updates(self, options: PollingOptions) -> list[Update]:
        self.calls.append(options.model_copy(deep=True))
        if self._steps:
            step = self._steps.pop(0)
            if isinstance(step, Exception):
                raise step
            return step

        self._state.stop()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled_calls += 1
            raise
        return []


class RecordingDispatcher:
    """Dispatcher double that records updates instead of scheduling handlers."""

    def __init__(self) -> None:
        self.updates: list[Update] = []

    def dispatch(self, update: Update) -> None:
        self.updates.append(update)

    @property
    def update_ids(self) -> list[int]:
        return [update.update_id for update in self.updates]
