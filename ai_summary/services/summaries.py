"""Summary submission: selection, de-duplication and enqueueing."""

import asyncio

from ai_summary.core.config import QueueConfig, SummaryConfig
from ai_summary.core.logging import get_logger
from ai_summary.models.summaries import (
    Attachment,
    SkippedAttachment,
    SummaryJob,
    SummaryRequest,
    SummarySubmissionResponse,
)
from ai_summary.services.attachments import AttachmentInspector
from ai_summary.services.task_queue import TaskQueue

logger = get_logger(__name__)


def job_display_name(job: SummaryJob) -> str:
    """Task panel label for a job."""
    return job.attachment.file_name or job.attachment.title or "unknown"


class SummaryService:
    """Turns a summary request into queued jobs."""

    def __init__(
        self,
        task_queue: TaskQueue[SummaryJob],
        inspector: AttachmentInspector,
        summary_config: SummaryConfig,
        queue_config: QueueConfig,
    ) -> None:
        self.task_queue = task_queue
        self.inspector = inspector
        self.summary_config = summary_config
        self.queue_config = queue_config

    async def submit(self, request: SummaryRequest) -> SummarySubmissionResponse:
        """
        Queue every eligible attachment in the request.

        Jobs run in the background; the returned task IDs can be followed
        through the task endpoints. All file checks finish before the
        duplicate check, and nothing is awaited between that check and
        enqueueing, so overlapping requests never queue the same file twice.
        """
        mode = request.mode or self.summary_config.mode
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self.inspector.inspect, item, mode) for item in request.attachments)
        )

        response = SummarySubmissionResponse()
        attachments: list[Attachment] = []
        seen: set[str] = set()

        for outcome in outcomes:
            if outcome is None:
                continue
            if isinstance(outcome, SkippedAttachment):
                response.skipped.append(outcome)
                continue
            if outcome.attachment_id in seen or self.task_queue.has_active_task(
                lambda job, attachment_id=outcome.attachment_id: (
                    job.attachment.attachment_id == attachment_id
                )
            ):
                response.duplicates.append(outcome.file_name)
                continue
            seen.add(outcome.attachment_id)
            attachments.append(outcome)

        if not attachments:
            logger.info(
                "Nothing to summarize",
                extra={"skipped": len(response.skipped), "duplicates": len(response.duplicates)},
            )
            return response

        self.task_queue.set_concurrency(request.concurrency or self.queue_config.concurrency)

        jobs = [
            SummaryJob(
                attachment=attachment,
                mode=mode,
                prompt_template=self.summary_config.prompt,
                max_chars=self.summary_config.max_chars,
                save_thoughts=self.summary_config.save_thoughts_to_note,
            )
            for attachment in attachments
        ]
        response.task_ids = [self.task_queue.submit_with_id(job)[0] for job in jobs]

        logger.info(
            "Summaries queued",
            extra={
                "queued": len(jobs),
                "skipped": len(response.skipped),
                "duplicates": len(response.duplicates),
            },
        )
        return response
