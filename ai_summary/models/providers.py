"""Provider-related models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class ProviderType(StrEnum):
    """Supported LLM endpoint flavours."""

    OPENAI_COMPATIBLE = "openai-compatible"
    GEMINI = "gemini"


class SummaryResult(BaseModel):
    """Aggregated output of one summarization call."""

    answer: str = Field(description="Final answer text")
    thoughts: str | None = Field(default=None, description="Model reasoning, if any was streamed")


class ProviderHealth(BaseModel):
    """Health status for the configured provider."""

    provider: ProviderType = Field(description="Provider type")
    model: str = Field(description="Configured model name")
    api_base: str = Field(description="Base URL requests are sent to")
    api_key_present: bool = Field(description="Whether an API key is available")
    healthy: bool = Field(description="Whether provider can be used")
    reason: str = Field(description="Human-readable status reason")


class ProviderTestResponse(BaseModel):
    """Result of a live connection test."""

    provider: ProviderType
    model: str
    reply: str
