"""Task panel API endpoints."""

import asyncio
import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from ai_summary.core.logging import get_logger
from ai_summary.models.summaries import SummaryJob
from ai_summary.models.tasks import (
    ClearQueueResponse,
    ConcurrencyUpdateRequest,
    QueueStatusResponse,
    TaskInfo,
    TaskListResponse,
)
from ai_summary.services.task_queue import TaskNotFoundError, TaskQueue

logger = get_logger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_task_queue(request: Request) -> TaskQueue[SummaryJob]:
    """Fetch the initialized task queue from app state."""
    queue = getattr(request.app.state, "task_queue", None)
    if not isinstance(queue, TaskQueue):
        raise HTTPException(status_code=500, detail="Task queue is not initialized")
    return queue


def _snapshot(task_queue: TaskQueue[SummaryJob]) -> TaskListResponse:
    return TaskListResponse(status=task_queue.get_status(), tasks=task_queue.get_all_tasks())


async def stream_queue_events(task_queue: TaskQueue[SummaryJob]) -> AsyncIterator[str]:
    """
    Yield a server-sent event with a full queue snapshot after every change.

    Changes that arrive while a snapshot is being delivered are coalesced
    into the next one.
    """
    changed = asyncio.Event()
    task_queue.add_listener(changed.set)
    try:
        while True:
            changed.clear()
            payload = _snapshot(task_queue).model_dump(mode="json")
            yield f"data: {json.dumps(payload)}\n\n"
            await changed.wait()
    finally:
        task_queue.remove_listener(changed.set)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> TaskListResponse:
    """List running, pending and finished tasks."""
    return _snapshot(task_queue)


@router.get("/status", response_model=QueueStatusResponse)
async def get_queue_status(
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> QueueStatusResponse:
    """Get queue counters."""
    return task_queue.get_status()


@router.get("/events")
async def queue_events(
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> StreamingResponse:
    """Live queue snapshots as a server-sent event stream."""
    return StreamingResponse(
        stream_queue_events(task_queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.put("/concurrency", response_model=QueueStatusResponse)
async def update_concurrency(
    request: ConcurrencyUpdateRequest,
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> QueueStatusResponse:
    """Change how many summaries run at once."""
    task_queue.set_concurrency(request.concurrency)
    return task_queue.get_status()


@router.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> None:
    """Forget finished tasks."""
    task_queue.clear_history()


@router.delete("", response_model=ClearQueueResponse)
async def clear_queue(
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> ClearQueueResponse:
    """Cancel every pending task."""
    return ClearQueueResponse(cancelled=task_queue.clear())


@router.get("/{task_id}", response_model=TaskInfo)
async def get_task(
    task_id: int,
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> TaskInfo:
    """Get one task, including its streamed output."""
    try:
        return task_queue.get_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Task not found") from exc


@router.delete("/{task_id}", response_model=TaskInfo)
async def cancel_task(
    task_id: int,
    task_queue: TaskQueue[SummaryJob] = Depends(get_task_queue),
) -> TaskInfo:
    """Cancel a task that has not started yet."""
    try:
        task = task_queue.get_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Task not found") from exc

    if not task_queue.cancel_task(task_id):
        raise HTTPException(
            status_code=409,
            detail=f"Task {task_id} is {task.status.value}; only pending tasks can be cancelled",
        )
    return task_queue.get_task(task_id)
