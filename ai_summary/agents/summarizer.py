"""Summary agent: the worker that turns one queued attachment into a note."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from time import perf_counter

from ai_summary.core.config import RateLimitConfig
from ai_summary.core.logging import get_logger
from ai_summary.models.providers import SummaryResult
from ai_summary.models.summaries import SummarizeMode, SummaryJob
from ai_summary.services.attachments import (
    AttachmentTextUnavailableError,
    extract_pdf_text,
    read_pdf_base64,
)
from ai_summary.services.notes import NoteWriter
from ai_summary.services.providers import ProviderClient
from ai_summary.services.rate_limiter import RateLimiter
from ai_summary.services.retry import SummaryRetryController
from ai_summary.services.streaming import StreamFragment

logger = get_logger(__name__)

OutputSink = Callable[[int, str, bool], None]

DEFAULT_TEXT_PROMPT = """Read the paper information and content excerpt below and write a structured summary.
- Title: {title}
- Abstract: {abstract}
- Content excerpt (may be truncated):
{content}

Answer in bullet points covering: research question, method, data and experiments, main findings, contributions and limitations."""

DEFAULT_PDF_PROMPT = """Read the attached PDF ({fileName}) carefully and write a structured summary.
Title: {title}
Abstract: {abstract}

Answer in bullet points covering: research question, method, data and experiments, main findings, contributions and limitations.
If the paper contains key figures or tables, briefly describe what they show."""


def build_prompt(
    template: str,
    *,
    title: str,
    abstract: str = "",
    content: str = "",
    file_name: str = "",
) -> str:
    """Fill the ``{title}``, ``{abstract}``, ``{content}`` and ``{fileName}`` placeholders."""
    return (
        template.replace("{title}", title)
        .replace("{abstract}", abstract)
        .replace("{content}", content)
        .replace("{fileName}", file_name)
    )


class SummaryAgent:
    """Runs one summary job: rate limit, model call with recovery, note."""

    def __init__(
        self,
        *,
        provider_client: ProviderClient,
        rate_limiter: RateLimiter,
        retry_controller: SummaryRetryController,
        note_writer: NoteWriter,
        rate_limits: RateLimitConfig,
        on_output: OutputSink,
    ) -> None:
        """Initialize summary agent."""
        self.provider_client = provider_client
        self.rate_limiter = rate_limiter
        self.retry_controller = retry_controller
        self.note_writer = note_writer
        self.rate_limits = rate_limits
        self._on_output = on_output

    async def run(self, job: SummaryJob, task_id: int) -> None:
        """
        Execute a job. Registered as the task queue worker.

        Args:
            job: Attachment and options captured at submission
            task_id: Queue task ID that receives streamed output
        """
        attachment = job.attachment
        start_time = perf_counter()

        def on_fragment(fragment: StreamFragment) -> None:
            self._on_output(task_id, fragment.text, fragment.is_thought)

        if self.rate_limits.enabled:
            await self.rate_limiter.wait_for_slot(
                self.rate_limits.max_requests, self.rate_limits.window_seconds
            )

        logger.info(
            "Summarizing attachment",
            extra={"file_name": attachment.file_name, "mode": job.mode.value},
        )

        if job.mode == SummarizeMode.PDF:
            pdf_base64 = await asyncio.to_thread(read_pdf_base64, attachment.file_path)
            prompt = build_prompt(
                job.prompt_template or DEFAULT_PDF_PROMPT,
                title=attachment.title,
                abstract=attachment.abstract,
                file_name=attachment.file_name,
            )

            async def summarize_pdf() -> SummaryResult:
                return await self.provider_client.summarize_pdf(
                    prompt,
                    pdf_base64,
                    file_name=attachment.file_name,
                    on_fragment=on_fragment,
                )

            async def summarize_local_text() -> SummaryResult:
                return await self._summarize_text(job, on_fragment)

            result = await self.retry_controller.run(
                summarize_pdf, on_fragment=on_fragment, fallback=summarize_local_text
            )
        else:

            async def summarize_text() -> SummaryResult:
                return await self._summarize_text(job, on_fragment)

            result = await self.retry_controller.run(summarize_text, on_fragment=on_fragment)

        await asyncio.to_thread(
            self.note_writer.write,
            attachment=attachment,
            result=result,
            model=self.provider_client.model,
            provider=self.provider_client.config.provider.value,
            mode=job.mode,
            save_thoughts=job.save_thoughts,
        )

        logger.info(
            "Attachment summarized",
            extra={
                "file_name": attachment.file_name,
                "duration_seconds": round(perf_counter() - start_time, 3),
                "answer_chars": len(result.answer),
            },
        )

    async def _summarize_text(
        self, job: SummaryJob, on_fragment: Callable[[StreamFragment], None]
    ) -> SummaryResult:
        attachment = job.attachment
        text = attachment.text or await asyncio.to_thread(
            extract_pdf_text, Path(attachment.file_path), job.max_chars
        )
        if not text:
            raise AttachmentTextUnavailableError(
                f"No text could be extracted from {attachment.file_name}; "
                "check that the PDF has a text layer"
            )

        prompt = build_prompt(
            job.prompt_template or DEFAULT_TEXT_PROMPT,
            title=attachment.title,
            abstract=attachment.abstract,
            content=text[: job.max_chars],
            file_name=attachment.file_name,
        )
        return await self.provider_client.summarize_text(prompt, on_fragment=on_fragment)
