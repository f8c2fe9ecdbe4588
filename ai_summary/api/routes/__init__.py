"""API routes."""

from ai_summary.api.routes.health import router as health_router
from ai_summary.api.routes.summaries import router as summaries_router
from ai_summary.api.routes.tasks import router as tasks_router

__all__ = ["health_router", "summaries_router", "tasks_router"]
