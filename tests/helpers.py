"""Shared test helpers for fake provider traffic and sample PDFs."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import fitz
import httpx

from ai_summary.core.config import ProviderConfig
from ai_summary.services.providers import ProviderClient

Handler = Callable[[httpx.Request], httpx.Response]


def sse_body(*events: dict[str, Any] | str) -> bytes:
    """Encode events as a server-sent event stream ending with [DONE]."""
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def openai_delta(content: str | None = None, reasoning: str | None = None) -> dict[str, Any]:
    """One OpenAI-compatible streaming event."""
    delta: dict[str, Any] = {}
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    if content is not None:
        delta["content"] = content
    return {"choices": [{"index": 0, "delta": delta}]}


def gemini_event(*parts: dict[str, Any]) -> dict[str, Any]:
    """One Gemini native streaming event."""
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def sse_response(*events: dict[str, Any] | str) -> httpx.Response:
    """A successful streamed response."""
    return httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=sse_body(*events)
    )


def make_client(handler: Handler, **config_overrides: Any) -> ProviderClient:
    """Provider client whose HTTP calls go to ``handler``."""
    config = ProviderConfig(api_key="test-key", **config_overrides)
    return ProviderClient(config, transport=httpx.MockTransport(handler))


def write_pdf(path: Path, pages: list[str]) -> Path:
    """Create a small PDF with one line of text per page."""
    path.parent.mkdir(parents=True, exist_ok=True)
    document = fitz.open()
    for text in pages:
        page = document.new_page()
        if text:
            page.insert_text((72, 72), text)
    document.save(str(path))
    document.close()
    return path
