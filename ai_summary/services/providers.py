"""HTTP client for OpenAI-compatible and Gemini summarization endpoints."""

import os
from typing import Any

import httpx

from ai_summary.core.config import ProviderConfig, Settings
from ai_summary.core.logging import get_logger
from ai_summary.models.providers import ProviderHealth, ProviderType, SummaryResult
from ai_summary.services.streaming import (
    FragmentCallback,
    extract_fragments,
    parse_sse_body,
    parse_sse_stream,
)

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are an academic assistant."
PING_PROMPT = "Reply with the single word: pong"


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    pass


class ProviderNotConfiguredError(ProviderError):
    """Raised when no API key is available."""

    pass


class ProviderHTTPError(ProviderError):
    """Raised when the endpoint answers with an error status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Provider request failed with status {status_code}: {body[:500]}")
        self.status_code = status_code
        self.body = body


class ProviderStreamError(ProviderError):
    """Raised when the connection drops while sending or streaming."""

    pass


class ProviderResponseError(ProviderError):
    """Raised when the endpoint answers successfully but without any answer text."""

    pass


class ProviderClient:
    """
    Sends summarization requests and parses their streamed responses.

    A fresh ``httpx.AsyncClient`` is opened per call. Tests inject a
    ``transport`` to intercept requests.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider client.

        Args:
            config: Provider configuration
            transport: Optional httpx transport override
        """
        self.config = config
        self._transport = transport

    @property
    def model(self) -> str:
        """Configured model name."""
        return self.config.model

    def get_api_key(self) -> str:
        """
        Resolve the API key from configuration or the environment.

        Raises:
            ProviderNotConfiguredError: If no key is available
        """
        api_key = self.config.api_key or os.getenv(self.config.api_key_env)
        if not api_key:
            raise ProviderNotConfiguredError(
                f"No API key configured; set {self.config.api_key_env} or provider.api_key"
            )
        return api_key

    def check_health(self) -> ProviderHealth:
        """Report readiness based on configuration only."""
        api_key_present = bool(self.config.api_key or os.getenv(self.config.api_key_env))
        return ProviderHealth(
            provider=self.config.provider,
            model=self.config.model,
            api_base=self.config.api_base,
            api_key_present=api_key_present,
            healthy=api_key_present,
            reason=(
                "Provider is ready"
                if api_key_present
                else f"Missing environment variable: {self.config.api_key_env}"
            ),
        )

    def build_request(
        self,
        prompt: str,
        *,
        pdf_base64: str | None = None,
        file_name: str = "document.pdf",
        stream: bool = True,
    ) -> tuple[str, dict[str, Any]]:
        """
        Build the endpoint URL and JSON body for one request.

        Args:
            prompt: User prompt
            pdf_base64: Optional base64 encoded PDF to attach
            file_name: File name reported for the attached PDF
            stream: Whether to request a streamed response

        Returns:
            Tuple of URL and request body
        """
        if self.config.provider == ProviderType.GEMINI:
            return self._build_gemini_request(prompt, pdf_base64=pdf_base64, stream=stream)
        return self._build_openai_request(
            prompt, pdf_base64=pdf_base64, file_name=file_name, stream=stream
        )

    def _build_openai_request(
        self, prompt: str, *, pdf_base64: str | None, file_name: str, stream: bool
    ) -> tuple[str, dict[str, Any]]:
        user_content: str | list[dict[str, Any]] = prompt
        if pdf_base64 is not None:
            user_content = [
                {"type": "text", "text": prompt},
                {
                    "type": "file",
                    "file": {
                        "filename": file_name,
                        "file_data": f"data:application/pdf;base64,{pdf_base64}",
                    },
                },
            ]

        body: dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_content},
            ],
            "temperature": self.config.temperature,
            "stream": stream,
        }
        if self.config.enable_thoughts:
            body["extra_body"] = {
                "generationConfig": {"thinkingConfig": self._thinking_config()},
            }

        url = f"{self.config.openai_api_base.rstrip('/')}/chat/completions"
        return url, body

    def _build_gemini_request(
        self, prompt: str, *, pdf_base64: str | None, stream: bool
    ) -> tuple[str, dict[str, Any]]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if pdf_base64 is not None:
            parts.append({"inlineData": {"mimeType": "application/pdf", "data": pdf_base64}})

        generation_config: dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.enable_thoughts:
            generation_config["thinkingConfig"] = self._thinking_config()

        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }

        base = self.config.gemini_api_base.rstrip("/")
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        method = "streamGenerateContent?alt=sse" if stream else "generateContent"
        return f"{base}/v1beta/models/{self.config.model}:{method}", body

    def _thinking_config(self) -> dict[str, Any]:
        return {"thinkingBudget": self.config.thinking_budget, "includeThoughts": True}

    def _headers(self) -> dict[str, str]:
        api_key = self.get_api_key()
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        if self.config.provider == ProviderType.GEMINI:
            headers["x-goog-api-key"] = api_key
        return headers

    async def summarize_text(
        self, prompt: str, on_fragment: FragmentCallback | None = None
    ) -> SummaryResult:
        """
        Summarize from a text prompt.

        Args:
            prompt: Complete prompt including the extracted document text
            on_fragment: Receives streamed fragments as they arrive

        Returns:
            Aggregated answer and thoughts

        Raises:
            ProviderNotConfiguredError: If no API key is available
            ProviderHTTPError: If the endpoint returns an error status
            ProviderStreamError: If the connection fails mid-request
            ProviderResponseError: If no answer text was produced
        """
        url, body = self.build_request(prompt)
        return await self._stream(url, body, on_fragment)

    async def summarize_pdf(
        self,
        prompt: str,
        pdf_base64: str,
        *,
        file_name: str = "document.pdf",
        on_fragment: FragmentCallback | None = None,
    ) -> SummaryResult:
        """
        Summarize by uploading the PDF itself.

        A ``ProviderHTTPError`` with status 413 signals that the PDF is too
        large for the endpoint.

        Args:
            prompt: Prompt sent alongside the document
            pdf_base64: Base64 encoded PDF bytes
            file_name: File name reported for the attachment
            on_fragment: Receives streamed fragments as they arrive

        Returns:
            Aggregated answer and thoughts
        """
        url, body = self.build_request(prompt, pdf_base64=pdf_base64, file_name=file_name)
        return await self._stream(url, body, on_fragment)

    async def ping(self) -> str:
        """
        Send a tiny non-streaming request to verify connectivity and credentials.

        Returns:
            The model's reply text
        """
        url, body = self.build_request(PING_PROMPT, stream=False)
        if self.config.provider == ProviderType.GEMINI:
            body["generationConfig"]["maxOutputTokens"] = 10
        else:
            body["max_tokens"] = 10

        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds, transport=self._transport
        ) as client:
            try:
                response = await client.post(url, json=body, headers=self._headers())
            except httpx.TransportError as exc:
                raise ProviderStreamError(f"Network error: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderHTTPError(response.status_code, response.text)

        fragments = extract_fragments(response.json())
        reply = "".join(fragment.text for fragment in fragments if not fragment.is_thought)
        return reply.strip() or "(empty reply)"

    async def _stream(
        self,
        url: str,
        body: dict[str, Any],
        on_fragment: FragmentCallback | None,
    ) -> SummaryResult:
        headers = self._headers()
        logger.info(
            "Sending summarization request",
            extra={"provider": self.config.provider.value, "model": self.config.model},
        )

        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds, transport=self._transport
        ) as client:
            try:
                async with client.stream("POST", url, json=body, headers=headers) as response:
                    if response.status_code >= 400:
                        error_body = (await response.aread()).decode("utf-8", errors="replace")
                        raise ProviderHTTPError(response.status_code, error_body)

                    content_type = response.headers.get("content-type", "")
                    if "text/event-stream" in content_type:
                        result = await parse_sse_stream(response.aiter_bytes(), on_fragment)
                    else:
                        text = (await response.aread()).decode("utf-8", errors="replace")
                        result = parse_sse_body(text, on_fragment)
            except httpx.TransportError as exc:
                raise ProviderStreamError(f"Network error while streaming response: {exc}") from exc

        if not result.answer:
            raise ProviderResponseError("Provider returned an empty response")
        return result


def create_provider_client(settings: Settings) -> ProviderClient:
    """Create the provider client used by summary workers."""
    client = ProviderClient(settings.provider)
    health = client.check_health()
    if not health.healthy:
        logger.warning("Provider is not ready", extra={"reason": health.reason})
    return client
