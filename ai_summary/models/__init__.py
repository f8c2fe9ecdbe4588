"""Data models for the application."""

from ai_summary.models.providers import (
    ProviderHealth,
    ProviderTestResponse,
    ProviderType,
    SummaryResult,
)
from ai_summary.models.summaries import (
    Attachment,
    AttachmentRequest,
    SkippedAttachment,
    SummarizeMode,
    SummaryJob,
    SummaryRequest,
    SummarySubmissionResponse,
)
from ai_summary.models.tasks import (
    ClearQueueResponse,
    ConcurrencyUpdateRequest,
    QueueStatusResponse,
    TaskInfo,
    TaskListResponse,
    TaskStatus,
)

__all__ = [
    "Attachment",
    "AttachmentRequest",
    "ClearQueueResponse",
    "ConcurrencyUpdateRequest",
    "ProviderHealth",
    "ProviderTestResponse",
    "ProviderType",
    "QueueStatusResponse",
    "SkippedAttachment",
    "SummarizeMode",
    "SummaryJob",
    "SummaryRequest",
    "SummaryResult",
    "SummarySubmissionResponse",
    "TaskInfo",
    "TaskListResponse",
    "TaskStatus",
]
