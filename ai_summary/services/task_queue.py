"""Bounded-concurrency in-memory task queue with observable state."""

import asyncio
from collections import deque
from collections.abc import Callable, Coroutine, Iterable
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from typing import Any, Generic, TypeVar

from ai_summary.core.logging import get_logger
from ai_summary.models.tasks import QueueStatusResponse, TaskInfo, TaskStatus

logger = get_logger(__name__)

PayloadT = TypeVar("PayloadT")

TaskWorker = Callable[[PayloadT, int], Coroutine[Any, Any, None]]
QueueListener = Callable[[], None]

current_task_id: ContextVar[int | None] = ContextVar("current_task_id", default=None)


def get_current_task_id() -> int | None:
    """ID of the queue task executing in the current context, if any."""
    return current_task_id.get()


class TaskError(Exception):
    """Base exception for task operations."""


class TaskNotFoundError(TaskError):
    """Raised when a task ID is unknown or already evicted from history."""


class TaskCancelledError(TaskError):
    """Rejection reason for tasks cancelled before they started."""


class TaskInterruptedError(TaskError):
    """Rejection reason for running tasks stopped by queue shutdown."""


class WorkerNotConfiguredError(TaskError):
    """Raised when a task is admitted before a worker was registered."""


@dataclass
class QueuedTask(Generic[PayloadT]):
    """Internal task state."""

    task_id: int
    payload: PayloadT
    display_name: str
    future: asyncio.Future[None]
    status: TaskStatus = TaskStatus.PENDING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None
    output: str = ""
    thought_output: str = ""
    execution: asyncio.Task[None] | None = field(default=None, repr=False)


def _mark_retrieved(future: asyncio.Future[None]) -> None:
    # Submitters may drop their futures; keep asyncio from warning about them.
    if not future.cancelled():
        future.exception()


class TaskQueue(Generic[PayloadT]):
    """
    FIFO task queue that runs at most ``concurrency`` tasks at a time.

    All bookkeeping happens synchronously on the event loop, so state changes
    are never interleaved. Observers register zero-argument listeners that
    are called after every state change and re-read whatever they need.
    """

    def __init__(
        self,
        worker: TaskWorker[PayloadT] | None = None,
        *,
        concurrency: int = 1,
        history_limit: int = 1000,
        display_name: Callable[[PayloadT], str] | None = None,
    ) -> None:
        self._worker = worker
        self._concurrency = max(1, concurrency)
        self._display_name = display_name or (lambda _payload: "task")

        self._pending: deque[QueuedTask[PayloadT]] = deque()
        self._running: dict[int, QueuedTask[PayloadT]] = {}
        self._history: deque[QueuedTask[PayloadT]] = deque(maxlen=history_limit)
        self._listeners: list[QueueListener] = []
        self._ids = count(1)

    @property
    def concurrency(self) -> int:
        """Current concurrency limit."""
        return self._concurrency

    def set_worker(self, worker: TaskWorker[PayloadT]) -> None:
        """Register the coroutine function that executes task payloads."""
        self._worker = worker

    def submit(self, payload: PayloadT) -> asyncio.Future[None]:
        """
        Enqueue a payload.

        Args:
            payload: Work item handed to the worker

        Returns:
            Future resolved when the task completes, or rejected with its error
        """
        _, future = self.submit_with_id(payload)
        return future

    def submit_with_id(self, payload: PayloadT) -> tuple[int, asyncio.Future[None]]:
        """Enqueue a payload and also return the allocated task ID."""
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_mark_retrieved)
        task = QueuedTask(
            task_id=next(self._ids),
            payload=payload,
            display_name=self._display_name(payload),
            future=future,
        )
        self._pending.append(task)

        logger.info(
            "Task submitted",
            extra={"task_id": task.task_id, "display_name": task.display_name},
        )
        self._notify()
        self._run_next()
        return task.task_id, future

    def submit_batch(self, payloads: Iterable[PayloadT]) -> list[asyncio.Future[None]]:
        """Enqueue several payloads in order."""
        return [self.submit(payload) for payload in payloads]

    def set_concurrency(self, concurrency: int) -> None:
        """
        Change how many tasks may run at once.

        Raising the limit starts waiting tasks immediately. Lowering it never
        interrupts running tasks; it takes effect as they finish.
        """
        self._concurrency = max(1, concurrency)
        logger.info("Queue concurrency updated", extra={"concurrency": self._concurrency})
        self._notify()
        self._run_next()

    def cancel_task(self, task_id: int) -> bool:
        """
        Cancel a task that has not started yet.

        Returns:
            True if the task was pending and is now cancelled, else False
        """
        task = next((task for task in self._pending if task.task_id == task_id), None)
        if task is None:
            return False

        self._pending.remove(task)
        self._finish(task, TaskStatus.CANCELLED, TaskCancelledError("Task cancelled"))
        logger.info("Task cancelled", extra={"task_id": task_id})
        self._notify()
        return True

    def append_output(self, task_id: int, chunk: str, is_thought: bool = False) -> None:
        """Append streamed text to a running task's output buffers."""
        task = self._running.get(task_id)
        if task is None:
            return

        if is_thought:
            task.thought_output += chunk
        else:
            task.output += chunk
        self._notify()

    def get_status(self) -> QueueStatusResponse:
        """Current queue counters."""
        completed = sum(1 for task in self._history if task.status == TaskStatus.COMPLETED)
        return QueueStatusResponse(
            queued=len(self._pending),
            running=len(self._running),
            concurrency=self._concurrency,
            completed=completed,
            failed=len(self._history) - completed,
        )

    def get_all_tasks(self) -> list[TaskInfo]:
        """Running tasks, then pending tasks, then history from newest to oldest."""
        ordered = [*self._running.values(), *self._pending, *reversed(self._history)]
        return [self._to_info(task) for task in ordered]

    def get_task(self, task_id: int) -> TaskInfo:
        """
        Snapshot of one task.

        Raises:
            TaskNotFoundError: If the task is unknown
        """
        for task in (*self._running.values(), *self._pending, *self._history):
            if task.task_id == task_id:
                return self._to_info(task)
        raise TaskNotFoundError(f"Task {task_id} not found")

    def clear(self) -> int:
        """
        Cancel every pending task.

        Returns:
            Number of tasks cancelled
        """
        cancelled = list(self._pending)
        self._pending.clear()
        for task in cancelled:
            self._finish(task, TaskStatus.CANCELLED, TaskCancelledError("Queue cleared"))

        if cancelled:
            logger.info("Queue cleared", extra={"cancelled": len(cancelled)})
        self._notify()
        return len(cancelled)

    def clear_history(self) -> None:
        """Forget finished tasks."""
        self._history.clear()
        self._notify()

    def has_active_task(self, predicate: Callable[[PayloadT], bool]) -> bool:
        """Whether any pending or running task's payload matches the predicate."""
        return any(
            predicate(task.payload) for task in (*self._pending, *self._running.values())
        )

    def add_listener(self, listener: QueueListener) -> None:
        """Register a state-change listener."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def shutdown(self) -> None:
        """Cancel pending tasks and stop running ones."""
        self.clear()
        executions = [
            task.execution for task in self._running.values() if task.execution is not None
        ]
        for execution in executions:
            execution.cancel()
        await asyncio.gather(*executions, return_exceptions=True)

        # Executions cancelled before their first step never reach _execute.
        for task in list(self._running.values()):
            self._running.pop(task.task_id)
            self._finish(task, TaskStatus.FAILED, TaskInterruptedError("Task interrupted"))
        self._notify()
        logger.info("Task queue stopped")

    def _run_next(self) -> None:
        while self._pending and len(self._running) < self._concurrency:
            self._start(self._pending.popleft())

    def _start(self, task: QueuedTask[PayloadT]) -> None:
        task.status = TaskStatus.RUNNING
        task.started_at = datetime.now(UTC)

        if self._worker is None:
            logger.error("Task admitted without a worker", extra={"task_id": task.task_id})
            self._finish(task, TaskStatus.FAILED, WorkerNotConfiguredError("Worker not set"))
            self._notify()
            return

        self._running[task.task_id] = task
        task.execution = asyncio.create_task(
            self._execute(task, self._worker), name=f"summary-task-{task.task_id}"
        )
        logger.info("Task started", extra={"task_id": task.task_id})
        self._notify()

    async def _execute(self, task: QueuedTask[PayloadT], worker: TaskWorker[PayloadT]) -> None:
        current_task_id.set(task.task_id)
        try:
            await worker(task.payload, task.task_id)
        except asyncio.CancelledError:
            self._complete(task, TaskStatus.FAILED, TaskInterruptedError("Task interrupted"))
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Task failed",
                extra={"task_id": task.task_id, "error": str(exc)},
                exc_info=True,
            )
            self._complete(task, TaskStatus.FAILED, exc)
        else:
            logger.info("Task completed", extra={"task_id": task.task_id})
            self._complete(task, TaskStatus.COMPLETED)

    def _complete(
        self,
        task: QueuedTask[PayloadT],
        status: TaskStatus,
        error: BaseException | None = None,
    ) -> None:
        self._running.pop(task.task_id, None)
        self._finish(task, status, error)
        self._notify()
        self._run_next()

    def _finish(
        self,
        task: QueuedTask[PayloadT],
        status: TaskStatus,
        error: BaseException | None = None,
    ) -> None:
        task.status = status
        task.ended_at = datetime.now(UTC)
        task.execution = None
        if error is not None:
            task.error = str(error) or error.__class__.__name__
        self._history.append(task)

        if task.future.done():
            return
        if error is None:
            task.future.set_result(None)
        else:
            task.future.set_exception(error)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.warning("Queue listener raised", exc_info=True)

    @staticmethod
    def _to_info(task: QueuedTask[Any]) -> TaskInfo:
        return TaskInfo(
            task_id=task.task_id,
            display_name=task.display_name,
            status=task.status,
            started_at=task.started_at,
            ended_at=task.ended_at,
            error=task.error,
            output=task.output,
            thought_output=task.thought_output,
        )
