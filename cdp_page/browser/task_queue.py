"""
Serial task queue used to keep capture commands mutually exclusive.
"""
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class TaskQueue:
    """
    Runs posted coroutine factories one at a time in FIFO order.

    A failing task only fails its own future. Once closed, queued tasks are
    rejected with the close error and new posts raise it.
    """

    def __init__(self):
        self._queue: Deque[Tuple[TaskFactory, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._closed_error: Optional[Exception] = None

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def post_task(self, factory: TaskFactory) -> "asyncio.Future[Any]":
        """
        Queue a task.

        Args:
            factory: Zero-argument callable returning the coroutine to run

        Returns:
            Future resolved with the task result
        """
        if self._closed_error is not None:
            raise type(self._closed_error)(*self._closed_error.args)
        future = asyncio.get_running_loop().create_future()
        self._queue.append((factory, future))
        if not self.busy:
            self._worker = asyncio.ensure_future(self._drain())
        return future

    async def _drain(self) -> None:
        while self._queue:
            factory, future = self._queue.popleft()
            if future.done():
                continue
            try:
                result = await factory()
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                continue
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
                continue
            if not future.done():
                future.set_result(result)

    def close(self, error: Exception) -> None:
        """Reject every queued task and refuse new ones."""
        if self._closed_error is not None:
            return
        self._closed_error = error
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.set_exception(type(error)(*error.args))
        logger.debug("Task queue closed")
