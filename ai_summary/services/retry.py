"""Retry and fallback policy around a single summarization attempt."""

import asyncio
from collections.abc import Awaitable, Callable

from ai_summary.core.config import RetryConfig
from ai_summary.core.logging import get_logger
from ai_summary.models.providers import SummaryResult
from ai_summary.services.providers import ProviderHTTPError, ProviderStreamError
from ai_summary.services.streaming import FragmentCallback, StreamFragment

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({504, 524})
PAYLOAD_TOO_LARGE = 413
TRANSIENT_MESSAGE_MARKERS = ("error in input stream", "network error", "econnreset")
FALLBACK_BANNER = (
    "> **Note:** the PDF was too large to upload, so this summary was generated "
    "from locally extracted text.\n\n"
)

Attempt = Callable[[], Awaitable[SummaryResult]]


class SummaryFallbackError(Exception):
    """Raised when the oversized-payload fallback could not produce a summary."""

    pass


def is_transient_error(exc: BaseException) -> bool:
    """Whether an error is worth retrying unchanged."""
    if isinstance(exc, ProviderHTTPError) and exc.status_code in TRANSIENT_STATUS_CODES:
        return True
    if isinstance(exc, ProviderStreamError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


def is_payload_too_large(exc: BaseException) -> bool:
    """Whether the endpoint rejected the request body as too large."""
    return isinstance(exc, ProviderHTTPError) and exc.status_code == PAYLOAD_TOO_LARGE


def describe_transient_error(exc: BaseException) -> str:
    """Short human-readable reason shown in retry notices."""
    if isinstance(exc, ProviderHTTPError):
        return f"Gateway timeout ({exc.status_code})"
    return "Stream interrupted"


class SummaryRetryController:
    """
    Wraps one summarization attempt with a retry policy and a one-shot fallback.

    Transient failures are retried with exponential backoff until the retry
    budget is used up. A 413 switches to the fallback exactly once. Everything
    else propagates untouched. Progress notices are emitted as answer
    fragments so they show up in the live task output.
    """

    def __init__(
        self,
        config: RetryConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt + 1``.

        Args:
            attempt: Zero-based index of the attempt that just failed

        Returns:
            Delay in seconds
        """
        return min(self.config.max_delay_seconds, self.config.base_delay_seconds * 2**attempt)

    async def run(
        self,
        attempt: Attempt,
        *,
        on_fragment: FragmentCallback | None = None,
        fallback: Attempt | None = None,
    ) -> SummaryResult:
        """
        Execute an attempt under the retry and fallback policies.

        Args:
            attempt: Zero-argument coroutine factory performing the primary request
            on_fragment: Receives retry and fallback notices
            fallback: Zero-argument coroutine factory used once on a 413

        Returns:
            Result of the attempt, or of the fallback with a warning banner prepended

        Raises:
            SummaryFallbackError: If the fallback was triggered and failed
        """
        try:
            return await self._run_with_retries(attempt, on_fragment)
        except ProviderHTTPError as exc:
            if not is_payload_too_large(exc) or fallback is None:
                raise
            original_error = exc

        logger.warning(
            "Payload too large, switching to local text",
            extra={"status_code": original_error.status_code},
        )
        self._notify(
            on_fragment, "\n[Request too large (413), switching to local text extraction...]\n"
        )

        try:
            result = await fallback()
        except Exception as exc:
            raise SummaryFallbackError(
                f"PDF was too large to upload and the local text fallback failed: {exc}"
            ) from exc

        return SummaryResult(answer=FALLBACK_BANNER + result.answer, thoughts=result.thoughts)

    async def _run_with_retries(
        self, attempt: Attempt, on_fragment: FragmentCallback | None
    ) -> SummaryResult:
        max_retries = self.config.max_retries
        retry = 0
        while True:
            try:
                return await attempt()
            except Exception as exc:
                if not is_transient_error(exc) or retry >= max_retries:
                    raise

                delay = self.backoff_delay(retry)
                retry += 1
                reason = describe_transient_error(exc)
                logger.warning(
                    "Transient provider failure, retrying",
                    extra={
                        "retry": retry,
                        "max_retries": max_retries,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                self._notify(
                    on_fragment,
                    f"\n[{reason}, retrying {retry}/{max_retries} in {delay:g}s...]\n",
                )
                await self._sleep(delay)

    @staticmethod
    def _notify(on_fragment: FragmentCallback | None, text: str) -> None:
        if on_fragment is not None:
            on_fragment(StreamFragment(text=text))
