"""Single-consumer mailbox that serializes all feed state mutation.

Graph store callbacks may arrive from any thread and may be re-entrant
(a write inside one callback triggers others).  Every callback is posted
into an :class:`asyncio.Queue` via ``call_soon_threadsafe`` and executed
one at a time by a worker task on the feed's event loop, so feed state is
only ever touched from that loop and never from inside an adapter call.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from pkgfeed.exceptions import FeedError

T = TypeVar("T")

_Job = tuple[Callable[..., Any], tuple[Any, ...]]


class SerialExecutor:
    """Mailbox executor bound to one event loop."""

    def __init__(self, *, name: str = "feed", logger: logging.Logger | logging.LoggerAdapter[Any] | None = None) -> None:
        self._name = name
        self._logger = logger or logging.getLogger(__name__)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[_Job] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise FeedError("Executor not started. Use 'async with FeedFacade(...) as feed:'")
        return self._loop

    def start(self) -> None:
        """Start the worker on the running loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = self._loop.create_task(self._run(), name=f"{self._name}-mailbox")

    async def stop(self) -> None:
        """Cancel the worker and any in-flight reads."""
        worker = self._worker
        self._worker = None
        pending = [worker, *self._tasks] if worker is not None else list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._queue = None

    def call_soon(self, fn: Callable[..., Any], *args: Any) -> None:
        """Post ``fn(*args)`` into the mailbox.  Safe from any thread."""
        loop = self.loop
        queue = self._queue
        if queue is None or loop.is_closed():
            self._logger.debug("dropping job for stopped executor: %r", fn)
            return
        loop.call_soon_threadsafe(queue.put_nowait, (fn, args))

    def wrap(self, fn: Callable[..., Any]) -> Callable[..., None]:
        """Return a callback that posts ``fn`` into the mailbox instead of running it."""

        @functools.wraps(fn)
        def post(*args: Any) -> None:
            self.call_soon(fn, *args)

        return post

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Run a coroutine as a tracked task on the executor's loop."""
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def join(self) -> None:
        """Wait until the mailbox is empty and no tracked task is running."""
        while True:
            queue = self._queue
            if queue is None:
                return
            await queue.join()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            # Let threadsafe posts scheduled on the loop land in the queue.
            await asyncio.sleep(0)
            if queue.empty() and not self._tasks:
                return

    async def _run(self) -> None:
        queue = self._queue
        assert queue is not None  # noqa: S101
        while True:
            fn, args = await queue.get()
            try:
                fn(*args)
            except Exception:
                self._logger.debug("mailbox job failed: %r", fn, exc_info=True)
            finally:
                queue.task_done()

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.debug("background read failed: %s", exc, exc_info=exc)
