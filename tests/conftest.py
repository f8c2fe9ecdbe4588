"""Pytest configuration and fixtures."""

import json
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from helpers import make_client, openai_delta, sse_response, write_pdf
from pytest_mock import MockerFixture

from ai_summary.core.config import RateLimitConfig, RetryConfig, SummaryConfig
from ai_summary.main import create_app
from ai_summary.main import settings as app_settings


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    Provide deterministic settings for tests.

    config/main.yaml is a local file, so tests must not depend on it. Notes go
    to a temporary directory and nothing waits on rate limits or backoff.
    """
    monkeypatch.delenv("AI_SUMMARY_API_KEY", raising=False)
    monkeypatch.setattr(
        app_settings, "summary", SummaryConfig(notes_dir=str(tmp_path / "notes"))
    )
    monkeypatch.setattr(app_settings, "rate_limits", RateLimitConfig(enabled=False))
    monkeypatch.setattr(
        app_settings, "retry", RetryConfig(max_retries=1, base_delay_seconds=0.0)
    )


@pytest.fixture
def pdf_path(tmp_path: Path) -> Path:
    """A two-page PDF with a text layer."""
    return write_pdf(tmp_path / "Attention Is All You Need.pdf", ["Transformers", "Attention"])


@pytest.fixture
def provider_requests() -> list[httpx.Request]:
    """Requests captured by the app's fake provider."""
    return []


@pytest.fixture
def test_app(
    mocker: MockerFixture, provider_requests: list[httpx.Request]
) -> Iterator[TestClient]:
    """
    Create a test client whose provider answers every request with a short summary.

    Yields:
        TestClient for making requests to the app
    """

    def handler(request: httpx.Request) -> httpx.Response:
        provider_requests.append(request)
        if json.loads(request.content).get("stream") is False:
            return httpx.Response(200, json={"choices": [{"message": {"content": "pong"}}]})
        return sse_response(openai_delta(reasoning="Reading."), openai_delta("A short summary."))

    mocker.patch("ai_summary.main.create_provider_client", return_value=make_client(handler))
    with TestClient(create_app()) as client:
        yield client
