"""Task queue models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Task lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskInfo(BaseModel):
    """Snapshot of one task as shown in the task panel."""

    task_id: int
    display_name: str
    status: TaskStatus
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None
    output: str = ""
    thought_output: str = ""


class QueueStatusResponse(BaseModel):
    """Aggregate queue counters."""

    queued: int = Field(description="Tasks waiting for a free slot")
    running: int = Field(description="Tasks currently executing")
    concurrency: int = Field(description="Maximum number of tasks executing at once")
    completed: int = Field(description="Completed tasks still in history")
    failed: int = Field(description="Failed or cancelled tasks still in history")


class TaskListResponse(BaseModel):
    """Queue status together with every visible task."""

    status: QueueStatusResponse
    tasks: list[TaskInfo]


class ConcurrencyUpdateRequest(BaseModel):
    """Change the number of concurrently running tasks."""

    concurrency: int = Field(ge=1, description="New concurrency limit")


class ClearQueueResponse(BaseModel):
    """Result of clearing pending tasks."""

    cancelled: int
