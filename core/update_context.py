"""
Single ordered execution context for all state mutations
"""

import asyncio
import threading
from typing import Any, Callable, Coroutine, Optional, Set

from .logging_config import get_logger


class UpdateContext:
    """Owns the asyncio loop on which session, connectivity and sync state change.

    Coroutines started through ``spawn`` are tracked so shutdown can wait for
    or cancel them. Callbacks coming from foreign threads (platform
    reachability events, SDK callbacks) go through ``post``, which hands them
    to the loop in submission order.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.logger = get_logger(__name__)
        self._loop = loop
        self._thread_id: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        # Stats
        self.spawned_count = 0
        self.posted_count = 0
        self.failed_count = 0

    def bind(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Bind to ``loop`` (or the running loop) from the loop's own thread"""
        self._loop = loop or asyncio.get_running_loop()
        self._thread_id = threading.get_ident()
        self._closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self.bind()
        return self._loop

    def is_current(self) -> bool:
        """True when called from a coroutine or callback running on the context"""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return False
        return running is self._loop

    def ensure_current(self) -> None:
        """
        Guard for state mutations: binds on first use, then rejects other loops

        Raises:
            RuntimeError: Called outside the context's event loop
        """
        if self._loop is None:
            self.bind()
            return

        if not self.is_current():
            raise RuntimeError("State mutation attempted outside the update context")

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """
        Schedule ``callback(*args)`` on the context from any thread

        Args:
            callback: Plain callable; exceptions are logged, never propagated
            *args: Positional arguments for the callback
        """
        if self._closed:
            self.logger.debug(f"Dropping posted callback {getattr(callback, '__name__', callback)}: context closed")
            return

        self.posted_count += 1
        self.loop.call_soon_threadsafe(self._run_callback, callback, args)

    def _run_callback(self, callback: Callable[..., Any], args: tuple) -> None:
        try:
            callback(*args)
        except Exception as e:
            self.failed_count += 1
            self.logger.error(f"Error in posted callback: {e}", exc_info=True)

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """
        Run a coroutine on the context and track it until it finishes

        Returns:
            The created task
        """
        task = self.loop.create_task(coro, name=name)
        self._tasks.add(task)
        self.spawned_count += 1
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            self.failed_count += 1
            self.logger.error(
                f"Background task {task.get_name()} failed: {error}",
                exc_info=(type(error), error, error.__traceback__)
            )

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done"""
        async def _wait_all():
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                # Let done-callbacks run so finished tasks leave the set
                await asyncio.sleep(0)

        if timeout is None:
            await _wait_all()
        else:
            await asyncio.wait_for(_wait_all(), timeout)

    async def shutdown(self) -> None:
        """Cancel tracked tasks and stop accepting posted callbacks"""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.debug(f"Cancelled {len(tasks)} background task(s)")
