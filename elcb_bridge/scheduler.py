"""Named deferred tasks driven by the event loop's timers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

CoroutineFactory = Callable[[], Awaitable[None]]


class DeferredScheduler:
    """Runs coroutines after a delay without blocking the caller.

    Each job has a name and at most one job per name is pending or running
    at a time: scheduling a name again replaces the pending job. Delays use
    ``loop.call_later`` so nothing sleeps on behalf of the caller.
    """

    def __init__(self) -> None:
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._closed = False

    def schedule(self, name: str, delay: float, factory: CoroutineFactory) -> None:
        if self._closed:
            LOGGER.debug("Scheduler closed; ignoring job %s", name)
            return

        self._cancel_handle(name)
        loop = asyncio.get_running_loop()
        self._handles[name] = loop.call_later(
            max(0.0, delay), self._fire, name, factory
        )
        LOGGER.debug("Scheduled %s in %.2fs", name, delay)

    def pending(self, name: str) -> bool:
        """Whether a job is waiting for its timer or currently running."""
        if name in self._handles:
            return True
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def cancel(self, name: str) -> None:
        self._cancel_handle(name)
        task = self._tasks.pop(name, None)
        if task is not None and not task.done():
            task.cancel()

    async def cancel_all(self) -> None:
        self._closed = True
        for name in list(self._handles):
            self._cancel_handle(name)

        tasks = [task for task in self._tasks.values() if not task.done()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def reopen(self) -> None:
        self._closed = False

    def _cancel_handle(self, name: str) -> None:
        handle: Optional[asyncio.TimerHandle] = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _fire(self, name: str, factory: CoroutineFactory) -> None:
        self._handles.pop(name, None)
        if self._closed:
            return
        task = asyncio.ensure_future(self._run(name, factory))
        self._tasks[name] = task
        task.add_done_callback(lambda done, job=name: self._forget(job, done))

    async def _run(self, name: str, factory: CoroutineFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Deferred job %s failed", name)

    def _forget(self, name: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
