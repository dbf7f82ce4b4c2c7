"""Per-category event dispatch.

Each event category gets its own queue and consumer task: handlers of one
category run in registration order and finish before the next event of that
category starts, while different categories proceed independently.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional

LOGGER = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


class EventDispatcher:
    """Ordered handler lists per category, consumed by one task each."""

    def __init__(self, name: str = "dispatcher") -> None:
        self._name = name
        self._handlers: dict[str, list[Handler]] = {}
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: list[asyncio.Task] = []
        self._closed = False

    def subscribe(self, category: str, handler: Handler) -> None:
        if self._workers:
            raise RuntimeError("Cannot subscribe after the dispatcher started")
        self._handlers.setdefault(category, []).append(handler)
        if category not in self._queues:
            self._queues[category] = asyncio.Queue()

    def start(self) -> None:
        for category, queue in self._queues.items():
            self._workers.append(
                asyncio.create_task(self._consume(category, queue), name=f"{self._name}:{category}")
            )

    def publish(self, category: str, payload: Any) -> bool:
        """Queue an event; events for unknown categories or after close are dropped.

        Events published before start() wait in the queue.
        """

        queue = self._queues.get(category)
        if queue is None or self._closed:
            return False
        queue.put_nowait(payload)
        return True

    async def join(self) -> None:
        """Wait until every queued event has been handled."""

        for queue in self._queues.values():
            await queue.join()

    async def close(self) -> None:
        self._closed = True
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    async def _consume(self, category: str, queue: asyncio.Queue) -> None:
        handlers = self._handlers[category]
        while True:
            payload = await queue.get()
            try:
                for handler in handlers:
                    try:
                        await handler(payload)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        LOGGER.exception("Handler %r failed for %s", handler, category)
            finally:
                queue.task_done()


class BackgroundTasks:
    """Holds fire-and-forget tasks so they are not garbage collected mid-flight."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Background task %s failed", task.get_name(), exc_info=error)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
