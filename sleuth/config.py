"""Sleuth configuration — loaded from .env via pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SleuthSettings(BaseSettings):
    """All Sleuth configuration. Reads from .env file and SLEUTH_* environment variables."""

    # --- LLM provider (OpenAI-compatible /v1/chat/completions) ---
    llm_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL of an OpenAI-compatible chat completions server",
    )
    llm_api_key: str = Field(default="", description="Bearer token for the LLM provider")
    llm_model: str = Field(default="gemini-2.5-flash", description="Model passed through to the provider")
    llm_timeout: float = Field(default=120.0, description="Per-request timeout in seconds")

    # --- Tools ---
    search_url: str = Field(
        default="",
        description="SearXNG-compatible JSON search endpoint; empty disables web_search",
    )
    fetch_max_chars: int = Field(default=3_000, description="Max characters kept per fetched page")

    # --- Persistence ---
    store_backend: str = Field(default="memory", description="Research store: memory|redis")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for the research store")
    store_ttl_seconds: int = Field(default=7 * 86400, description="TTL for stored research records")

    # --- Pipeline ---
    batch_size: int = Field(default=3, ge=1, description="Concurrent searcher tasks per batch")
    max_decomposed_tasks: int = Field(default=5, ge=0)
    analysis_limit: int = Field(default=5, ge=0, description="Findings sent to the extractor")
    verification_limit: int = Field(default=5, ge=0, description="Findings sent to the fact-checker")
    freshness_threshold_hours: float = Field(default=24.0, gt=0)
    evaluate_completeness: bool = Field(
        default=False,
        description="Run an extra completeness check after analysis (non-fatal)",
    )

    # --- Memory ---
    short_term_budget: int = Field(default=4_000, ge=1, description="Short-term memory budget (token units)")
    long_term_budget: int = Field(default=16_000, ge=1, description="Long-term memory budget (token units)")

    # --- Logging / tracing ---
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console",
        description="Log format: 'console' for dev, 'json' for production",
    )
    trace_dir: Path = Field(default=Path.home() / ".sleuth" / "traces")
    persist_traces: bool = Field(default=True)

    # --- User ---
    default_user_id: str = Field(default="default", description="Default user ID")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SLEUTH_",
        extra="ignore",
    )


# Singleton, import this everywhere
settings = SleuthSettings()
