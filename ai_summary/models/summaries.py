"""Summary submission and attachment models."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field


class SummarizeMode(StrEnum):
    """How attachment content is handed to the model."""

    PDF = "pdf"
    TEXT = "text"


class AttachmentRequest(BaseModel):
    """One attachment to summarize."""

    file_path: str = Field(min_length=1, description="Path to the PDF file")
    title: str | None = Field(default=None, description="Parent item title")
    abstract: str = Field(default="", description="Parent item abstract")


class SummaryRequest(BaseModel):
    """Summarize a selection of attachments."""

    attachments: list[AttachmentRequest] = Field(min_length=1)
    mode: SummarizeMode | None = Field(default=None, description="Optional mode override")
    concurrency: int | None = Field(
        default=None, ge=1, description="Optional concurrency override for the queue"
    )


class Attachment(BaseModel):
    """An attachment that passed eligibility checks."""

    attachment_id: str = Field(description="Resolved absolute path, used for de-duplication")
    file_path: Path
    file_name: str
    title: str
    abstract: str = ""
    text: str = Field(default="", description="Locally extracted text, if already available")
    file_size: int = 0
    page_count: int | None = None


class SkippedAttachment(BaseModel):
    """An attachment that was not queued, with the reason."""

    file_name: str
    reason: str


class SummaryJob(BaseModel):
    """Queue payload: one attachment plus the options captured at submission."""

    attachment: Attachment
    mode: SummarizeMode
    prompt_template: str = ""
    max_chars: int = 800_000
    save_thoughts: bool = False


class SummarySubmissionResponse(BaseModel):
    """Outcome of a summary submission."""

    task_ids: list[int] = Field(default_factory=list)
    skipped: list[SkippedAttachment] = Field(default_factory=list)
    duplicates: list[str] = Field(
        default_factory=list, description="File names already pending or running"
    )
