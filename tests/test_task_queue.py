"""Tests for the bounded-concurrency task queue."""

import asyncio
import time
from collections.abc import Callable

import pytest

from ai_summary.models.tasks import TaskStatus
from ai_summary.services.task_queue import (
    TaskCancelledError,
    TaskInterruptedError,
    TaskNotFoundError,
    TaskQueue,
    WorkerNotConfiguredError,
    get_current_task_id,
)


class GatedWorker:
    """Worker that blocks each payload until released."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.started: list[str] = []
        self.active = 0
        self.max_active = 0

    def release(self, payload: str) -> None:
        self.gates.setdefault(payload, asyncio.Event()).set()

    async def __call__(self, payload: str, task_id: int) -> None:
        self.started.append(payload)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gates.setdefault(payload, asyncio.Event()).wait()
            if payload.startswith("fail"):
                raise RuntimeError(f"{payload} exploded")
        finally:
            self.active -= 1


async def _wait_until(condition: Callable[[], bool], timeout_seconds: float = 2.0) -> None:
    start = time.monotonic()
    while time.monotonic() - start < timeout_seconds:
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("Timed out waiting for condition")


def _statuses(queue: TaskQueue[str]) -> dict[str, TaskStatus]:
    return {task.display_name: task.status for task in queue.get_all_tasks()}


class TestTaskQueue:
    """Unit tests for TaskQueue."""

    @pytest.mark.asyncio
    async def test_concurrency_bound_and_fifo_order(self) -> None:
        """Five tasks with concurrency two start in submission order, two at a time."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=2, display_name=str)
        payloads = ["A", "B", "C", "D", "E"]

        futures = queue.submit_batch(payloads)

        status = queue.get_status()
        assert (status.queued, status.running) == (3, 2)
        assert _statuses(queue)["A"] == TaskStatus.RUNNING
        assert _statuses(queue)["C"] == TaskStatus.PENDING

        for payload in payloads:
            await _wait_until(lambda p=payload: p in worker.started)
            worker.release(payload)

        await asyncio.gather(*futures)
        assert worker.started == payloads
        assert worker.max_active == 2
        final = queue.get_status()
        assert (final.queued, final.running, final.completed, final.failed) == (0, 0, 5, 0)

    @pytest.mark.asyncio
    async def test_failure_rejects_future_and_records_error(self) -> None:
        """A worker exception fails the task and rejects its future with the same error."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, display_name=str)

        future = queue.submit("fail-1")
        worker.release("fail-1")

        with pytest.raises(RuntimeError, match="fail-1 exploded"):
            await future

        task = queue.get_all_tasks()[0]
        assert task.status == TaskStatus.FAILED
        assert task.error == "fail-1 exploded"
        assert task.started_at is not None and task.ended_at is not None
        assert queue.get_status().failed == 1

    @pytest.mark.asyncio
    async def test_failure_admits_next_task(self) -> None:
        """A failing task frees its slot for the next pending task."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        queue.submit("fail-1")
        second = queue.submit("ok")

        worker.release("fail-1")
        worker.release("ok")
        await second

        assert _statuses(queue) == {"ok": TaskStatus.COMPLETED, "fail-1": TaskStatus.FAILED}

    @pytest.mark.asyncio
    async def test_cancel_pending_task_only(self) -> None:
        """Only pending tasks can be cancelled."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        running = queue.submit("first")
        pending = queue.submit("second")
        running_id, pending_id = [task.task_id for task in queue.get_all_tasks()]

        assert queue.cancel_task(pending_id) is True
        assert queue.cancel_task(running_id) is False
        assert queue.cancel_task(pending_id) is False
        assert queue.cancel_task(999) is False

        with pytest.raises(TaskCancelledError, match="Task cancelled"):
            await pending

        info = queue.get_task(pending_id)
        assert info.status == TaskStatus.CANCELLED
        assert info.ended_at is not None
        assert info.started_at is None

        worker.release("first")
        await running
        assert worker.started == ["first"]

    @pytest.mark.asyncio
    async def test_append_output_only_for_running_tasks(self) -> None:
        """Output is buffered per class while running and frozen afterwards."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        future = queue.submit("A")
        queue.submit("B")
        first_id, second_id = [task.task_id for task in queue.get_all_tasks()]

        queue.append_output(first_id, "Hello ", False)
        queue.append_output(first_id, "thinking", True)
        queue.append_output(first_id, "world", False)
        queue.append_output(second_id, "ignored", False)

        worker.release("A")
        await future
        queue.append_output(first_id, " late", False)

        first = queue.get_task(first_id)
        assert first.output == "Hello world"
        assert first.thought_output == "thinking"
        assert queue.get_task(second_id).output == ""

    @pytest.mark.asyncio
    async def test_get_all_tasks_order(self) -> None:
        """Running first, then pending, then history newest first."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        for payload in ["h1", "h2"]:
            future = queue.submit(payload)
            worker.release(payload)
            await future
        queue.submit("run")
        queue.submit("wait1")
        queue.submit("wait2")

        names = [task.display_name for task in queue.get_all_tasks()]

        assert names == ["run", "wait1", "wait2", "h2", "h1"]
        worker.release("run")
        worker.release("wait1")
        worker.release("wait2")
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_history_limit_evicts_oldest(self) -> None:
        """History keeps only the most recent finished tasks."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, history_limit=2, display_name=str)
        for payload in ["one", "two", "three"]:
            worker.release(payload)
        await asyncio.gather(*queue.submit_batch(["one", "two", "three"]))

        assert [task.display_name for task in queue.get_all_tasks()] == ["three", "two"]
        with pytest.raises(TaskNotFoundError):
            queue.get_task(1)

    @pytest.mark.asyncio
    async def test_clear_cancels_all_pending(self) -> None:
        """Clearing rejects every pending task and leaves running ones alone."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        running = queue.submit("run")
        pending = queue.submit_batch(["p1", "p2"])

        assert queue.clear() == 2

        for future in pending:
            with pytest.raises(TaskCancelledError, match="Queue cleared"):
                await future
        assert queue.get_status().queued == 0
        assert queue.get_status().running == 1

        worker.release("run")
        await running

    @pytest.mark.asyncio
    async def test_clear_history(self) -> None:
        """Clearing history drops finished tasks only."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        worker.release("done")
        await queue.submit("done")
        queue.submit("run")

        queue.clear_history()

        assert [task.display_name for task in queue.get_all_tasks()] == ["run"]
        worker.release("run")
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_set_concurrency_starts_waiting_tasks(self) -> None:
        """Raising the limit admits pending tasks immediately."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        queue.submit_batch(["A", "B", "C"])

        queue.set_concurrency(3)

        assert queue.get_status().running == 3
        assert queue.concurrency == 3
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_lowering_concurrency_does_not_evict(self) -> None:
        """Lowering the limit lets running tasks finish before admitting more."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=2, display_name=str)
        futures = queue.submit_batch(["A", "B", "C"])

        queue.set_concurrency(0)

        assert queue.concurrency == 1
        assert queue.get_status().running == 2
        worker.release("A")
        await futures[0]
        assert queue.get_status().running == 1
        assert _statuses(queue)["C"] == TaskStatus.PENDING

        worker.release("B")
        await futures[1]
        assert _statuses(queue)["C"] == TaskStatus.RUNNING
        worker.release("C")
        await futures[2]

    @pytest.mark.asyncio
    async def test_has_active_task(self) -> None:
        """Pending and running payloads are active; finished ones are not."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        first = queue.submit("run")
        queue.submit("wait")

        assert queue.has_active_task(lambda payload: payload == "run")
        assert queue.has_active_task(lambda payload: payload == "wait")
        assert not queue.has_active_task(lambda payload: payload == "other")

        worker.release("run")
        await first
        assert not queue.has_active_task(lambda payload: payload == "run")
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_listeners_notified_and_failures_isolated(self) -> None:
        """A raising listener does not stop later listeners or the queue."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, display_name=str)
        calls: list[int] = []

        def broken() -> None:
            raise RuntimeError("listener bug")

        def counting() -> None:
            calls.append(queue.get_status().running)

        queue.add_listener(broken)
        queue.add_listener(counting)
        worker.release("A")
        await queue.submit("A")

        assert len(calls) >= 3
        assert queue.get_status().completed == 1

        queue.remove_listener(counting)
        queue.remove_listener(counting)
        before = len(calls)
        queue.clear_history()
        assert len(calls) == before

    @pytest.mark.asyncio
    async def test_missing_worker_fails_task(self) -> None:
        """Tasks admitted without a worker fail instead of hanging."""
        queue: TaskQueue[str] = TaskQueue(display_name=str)

        with pytest.raises(WorkerNotConfiguredError):
            await queue.submit("A")

        assert queue.get_all_tasks()[0].status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_worker_sees_its_task_id_in_context(self) -> None:
        """The running task's ID is available to code called by the worker."""
        seen: list[tuple[int, int | None]] = []

        async def worker(payload: str, task_id: int) -> None:
            seen.append((task_id, get_current_task_id()))

        queue: TaskQueue[str] = TaskQueue(worker, concurrency=2)
        await asyncio.gather(*queue.submit_batch(["a", "b"]))

        assert seen == [(1, 1), (2, 2)]
        assert get_current_task_id() is None

    @pytest.mark.asyncio
    async def test_unawaited_failures_are_silent(self) -> None:
        """Dropped futures of failed tasks do not break later submissions."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, display_name=str)
        worker.release("fail-1")
        worker.release("ok")

        queue.submit("fail-1")
        await queue.submit("ok")

        assert queue.get_status().failed == 1

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_running_tasks(self) -> None:
        """Shutdown cancels pending tasks and fails running ones."""
        worker = GatedWorker()
        queue: TaskQueue[str] = TaskQueue(worker, concurrency=1, display_name=str)
        running = queue.submit("run")
        pending = queue.submit("wait")
        await _wait_until(lambda: "run" in worker.started)

        await queue.shutdown()

        with pytest.raises(TaskInterruptedError):
            await running
        with pytest.raises(TaskCancelledError):
            await pending
        assert _statuses(queue) == {"run": TaskStatus.FAILED, "wait": TaskStatus.CANCELLED}
