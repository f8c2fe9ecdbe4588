"""Services for the application."""

from ai_summary.services.providers import ProviderClient, ProviderError, ProviderHTTPError
from ai_summary.services.rate_limiter import RateLimiter
from ai_summary.services.retry import SummaryFallbackError, SummaryRetryController
from ai_summary.services.task_queue import TaskNotFoundError, TaskQueue

__all__ = [
    "ProviderClient",
    "ProviderError",
    "ProviderHTTPError",
    "RateLimiter",
    "SummaryFallbackError",
    "SummaryRetryController",
    "TaskNotFoundError",
    "TaskQueue",
]
