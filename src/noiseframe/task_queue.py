"""
Single-flight FIFO queue for cipher operations.

Counters are handed out in the order jobs run, so each direction funnels its
cipher work through one TaskQueue: at most one job runs at a time and jobs
start in submission order.
"""

import asyncio
import contextvars
import inspect
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

# The queue whose job owns the current task, if any
_running_queue: contextvars.ContextVar = contextvars.ContextVar("noiseframe_running_queue", default=None)


@dataclass
class QueuedJob:
    """A submitted operation and the future its outcome settles."""
    operation: Callable[[Any], Any]
    arg: Any
    future: asyncio.Future


class TaskQueue:
    """Runs submitted operations one at a time, in order."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._jobs: deque[QueuedJob] = deque()
        self._current: Optional[QueuedJob] = None

    @property
    def busy(self) -> bool:
        """True while a job is running."""
        return self._current is not None

    @property
    def pending(self) -> int:
        """Number of jobs waiting to start."""
        return len(self._jobs)

    def enqueue(self, operation: Callable[[Any], Any], arg: Any = None) -> asyncio.Future:
        """
        Submit an operation.

        Must be called from a running event loop. The operation may be a
        coroutine function or a plain callable; it is called with arg.

        Returns:
            Future settled with the operation's result or exception
        """
        future = asyncio.get_running_loop().create_future()
        self._jobs.append(QueuedJob(operation=operation, arg=arg, future=future))
        self._dequeue()
        return future

    def in_job(self) -> bool:
        """True when called from inside a job running on this queue."""
        return _running_queue.get() is self

    async def run(self, operation: Callable[[Any], Any], arg: Any = None) -> Any:
        """
        Run an operation on this queue and wait for its outcome.

        Called from inside one of this queue's own jobs, the operation runs
        inline: the calling job already holds the queue, and queueing behind
        it would never start.
        """
        if not self.in_job():
            return await self.enqueue(operation, arg)

        result = operation(arg)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _dequeue(self) -> None:
        while self._current is None and self._jobs:
            job = self._jobs.popleft()
            # Tasks copy the context when created, so the job's task keeps the marker
            token = _running_queue.set(self)
            try:
                result = job.operation(job.arg)
                if inspect.isawaitable(result):
                    self._current = job
                    task = asyncio.ensure_future(result)
                    task.add_done_callback(self._on_done)
                    return
            except Exception as e:
                logger.debug("task_queue_job_failed_to_start", queue=self.name, error=repr(e))
                self._current = None
                self._settle(job, exception=e)
                continue
            finally:
                _running_queue.reset(token)

            self._settle(job, result=result)

    def _on_done(self, task: asyncio.Future) -> None:
        job = self._current
        self._current = None

        if task.cancelled():
            if not job.future.done():
                job.future.cancel()
        else:
            error = task.exception()
            if error is not None:
                self._settle(job, exception=error)
            else:
                self._settle(job, result=task.result())

        self._dequeue()

    @staticmethod
    def _settle(job: QueuedJob, result: Any = None, exception: Optional[BaseException] = None) -> None:
        if job.future.done():
            return
        if exception is not None:
            job.future.set_exception(exception)
        else:
            job.future.set_result(result)
