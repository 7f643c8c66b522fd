from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from .action import Action, Render


logger = logging.getLogger(__name__)


class DebounceCoordinator:
    """Collapse bursts of render requests into one trailing Render action.

    While a delayed render is pending, further requests are dropped; the
    pending one still fires after `interval` seconds and clears the flag, so
    the last request of a burst is always covered by a render.
    """

    def __init__(self, actions: asyncio.Queue[Action], interval: float = 0.0) -> None:
        self.actions = actions
        self.interval = max(0.0, interval)
        self.requests: asyncio.Queue[None] = asyncio.Queue()
        # coordinator and one-shot tasks race on this flag
        self._lock = asyncio.Lock()
        self._debouncing = False
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="unitdash-debounce")

    def request(self) -> None:
        self.requests.put_nowait(None)

    async def _run(self) -> None:
        while True:
            await self.requests.get()
            async with self._lock:
                if self._debouncing:
                    continue
                self._debouncing = True
            task = asyncio.create_task(self._fire())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _fire(self) -> None:
        # sleep(0) still yields, so same-tick requests coalesce
        await asyncio.sleep(self.interval)
        self.actions.put_nowait(Render())
        async with self._lock:
            self._debouncing = False

    async def stop(self) -> None:
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._task = None
        logger.debug("debouncer stopped")
