"""Queue-driven dispatch of vault events to a handler."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Optional, Set, Tuple

from templatesync.errors import TemplateSyncError
from templatesync.models import VaultEvent
from templatesync.sync.locks import KeyedLocks

LOGGER = logging.getLogger(__name__)

Handler = Callable[[VaultEvent], Awaitable[Any]]


class EventDispatcher:
    """Feeds events from a queue to ``handler``, one task per event.

    Events that touch the same document run one after the other, in the
    order they were submitted.  Events for different documents may
    interleave at any await.
    """

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self._queue: asyncio.Queue[Optional[Tuple[VaultEvent, asyncio.Future]]] = asyncio.Queue()
        self._locks = KeyedLocks()
        self._tasks: Set[asyncio.Task] = set()
        self._runner: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        if not self.running:
            self._runner = asyncio.create_task(self.run())

    def submit(self, event: VaultEvent) -> asyncio.Future:
        """Queue ``event``; the returned future resolves once it was handled."""
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((event, future))
        return future

    async def run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                self._queue.task_done()
                break
            event, future = item
            task = asyncio.create_task(self._handle(event, future))
            self._tasks.add(task)
            task.add_done_callback(self._task_finished)

    def _task_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._queue.task_done()

    async def _handle(self, event: VaultEvent, future: asyncio.Future) -> None:
        result = None
        try:
            async with AsyncExitStack() as stack:
                for doc_id in event.doc_ids:
                    await stack.enter_async_context(self._locks.hold(doc_id))
                result = await self.handler(event)
        except TemplateSyncError as exc:
            LOGGER.warning("Failed to handle %s for %s: %s", event.kind.value, event.doc_id, exc)
        except Exception:
            LOGGER.exception("Unexpected error handling %s for %s", event.kind.value, event.doc_id)
        finally:
            if not future.done():
                future.set_result(result)

    async def join(self) -> None:
        """Wait until every submitted event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Finish pending events and stop the consumer task."""
        if self._runner is None:
            return
        await self.join()
        self._queue.put_nowait(None)
        await self._runner
        self._runner = None
