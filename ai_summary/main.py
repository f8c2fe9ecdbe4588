"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ai_summary.agents.summarizer import SummaryAgent
from ai_summary.api.routes import health_router, summaries_router, tasks_router
from ai_summary.core.config import get_settings
from ai_summary.core.logging import get_logger, setup_logging
from ai_summary.models.summaries import SummaryJob
from ai_summary.services.attachments import AttachmentInspector
from ai_summary.services.notes import NoteWriter
from ai_summary.services.providers import create_provider_client
from ai_summary.services.rate_limiter import RateLimiter
from ai_summary.services.retry import SummaryRetryController
from ai_summary.services.summaries import SummaryService, job_display_name
from ai_summary.services.task_queue import TaskQueue

settings = get_settings()
setup_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds the task queue and summary pipeline on startup and stops the queue
    on shutdown.
    """
    logger.info(
        "Starting Zotero AI Summary service",
        extra={"version": settings.version, "debug": settings.debug},
    )

    task_queue: TaskQueue[SummaryJob] = TaskQueue(
        concurrency=settings.queue.concurrency,
        history_limit=settings.queue.history_limit,
        display_name=job_display_name,
    )
    provider_client = create_provider_client(settings)
    note_writer = NoteWriter(settings.summary.notes_dir)
    summary_agent = SummaryAgent(
        provider_client=provider_client,
        rate_limiter=RateLimiter(),
        retry_controller=SummaryRetryController(settings.retry),
        note_writer=note_writer,
        rate_limits=settings.rate_limits,
        on_output=task_queue.append_output,
    )
    task_queue.set_worker(summary_agent.run)

    app.state.task_queue = task_queue
    app.state.provider_client = provider_client
    app.state.summary_service = SummaryService(
        task_queue,
        AttachmentInspector(settings.summary, note_writer),
        settings.summary,
        settings.queue,
    )

    yield
    await app.state.task_queue.shutdown()
    logger.info("Shutting down Zotero AI Summary service")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="Queued, streamed AI summaries for Zotero PDF attachments",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(summaries_router)
    app.include_router(tasks_router)

    logger.info("FastAPI application created successfully")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ai_summary.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
