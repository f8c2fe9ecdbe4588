"""Configuration management."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ai_summary.models.providers import ProviderType
from ai_summary.models.summaries import SummarizeMode


class ProviderConfig(BaseModel):
    """Configuration for the LLM endpoint."""

    provider: ProviderType = Field(
        default=ProviderType.OPENAI_COMPATIBLE, description="Request/response flavour"
    )
    openai_api_base: str = Field(
        default="https://x666.me/v1", description="Base URL for OpenAI-compatible endpoints"
    )
    gemini_api_base: str = Field(
        default="https://x666.me", description="Base URL for Gemini native endpoints"
    )
    api_key: str | None = Field(default=None, description="API key (prefer api_key_env)")
    api_key_env: str = Field(
        default="AI_SUMMARY_API_KEY", description="Environment variable holding the API key"
    )
    model: str = Field(default="gemini-2.5-pro-1m", description="Model to use")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    enable_thoughts: bool = Field(default=True, description="Ask the model to stream reasoning")
    thinking_budget: int = Field(default=-1, description="Reasoning token budget, -1 for dynamic")
    timeout_seconds: float = Field(default=600.0, gt=0, description="Hard request deadline")

    @property
    def api_base(self) -> str:
        """Base URL for the selected provider."""
        if self.provider == ProviderType.GEMINI:
            return self.gemini_api_base
        return self.openai_api_base


class QueueConfig(BaseModel):
    """Task queue configuration."""

    concurrency: int = Field(default=1, ge=1, description="Tasks allowed to run at once")
    history_limit: int = Field(default=1000, ge=1, description="Finished tasks kept in memory")


class RateLimitConfig(BaseModel):
    """Sliding-window limit on summary request starts."""

    enabled: bool = Field(default=True, description="Whether rate limiting is enabled")
    max_requests: int = Field(default=20, ge=1, description="Starts allowed per window")
    window_minutes: float = Field(default=5.0, gt=0, description="Window length in minutes")

    @property
    def window_seconds(self) -> float:
        """Window length in seconds."""
        return self.window_minutes * 60


class RetryConfig(BaseModel):
    """Retry policy for transient provider failures."""

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay_seconds: float = Field(default=2.0, ge=0.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0)


class SummaryConfig(BaseModel):
    """Summary generation and attachment selection."""

    mode: SummarizeMode = Field(default=SummarizeMode.PDF, description="pdf uploads the file")
    prompt: str = Field(default="", description="Prompt template, blank for the default")
    max_chars: int = Field(default=800_000, ge=1, description="Local text truncation limit")
    attachment_filter: str = Field(
        default="!* - mono.pdf, !* - dual.pdf", description="Attachment file name rules"
    )
    max_file_size_mb: float = Field(default=0, ge=0, description="0 disables the size check")
    max_page_count: int = Field(default=0, ge=0, description="0 disables the page check")
    skip_existing_summary: bool = Field(default=True)
    save_thoughts_to_note: bool = Field(default=False)
    notes_dir: str = Field(default="data/notes", description="Directory for summary notes")


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = Field(default="Zotero AI Summary", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)

    # Configuration file path
    config_file: str = Field(
        default="config/main.yaml",
        description="Path to configuration file",
    )

    model_config = SettingsConfigDict(
        env_prefix="ZAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def load_yaml_config(self) -> dict[str, Any]:
        """
        Load configuration from YAML file.

        Returns:
            Configuration dictionary
        """
        config_path = Path(self.config_file)
        if not config_path.exists():
            return {}

        with open(config_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def merge_yaml_config(self) -> None:
        """Merge YAML configuration into settings."""
        yaml_config = self.load_yaml_config()
        sections: dict[str, type[BaseModel]] = {
            "provider": ProviderConfig,
            "queue": QueueConfig,
            "rate_limits": RateLimitConfig,
            "retry": RetryConfig,
            "summary": SummaryConfig,
        }

        for key, value in yaml_config.items():
            if not hasattr(self, key):
                continue
            if key in sections and isinstance(value, dict):
                setattr(self, key, sections[key](**value))
            else:
                setattr(self, key, value)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Application settings
    """
    settings = Settings()

    if os.path.exists(settings.config_file):
        settings.merge_yaml_config()

    return settings
