"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from querypilot.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.agent.max_iterations)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "google", "local"]

_KEY_PREFIXES = {
    "openai_api_key": ("OpenAI", "sk-"),
    "anthropic_api_key": ("Anthropic", "sk-ant-"),
}


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    # Provider selection
    default_provider: ProviderName = Field(
        default="google", description="Default LLM provider"
    )
    agent_provider: ProviderName | None = Field(
        None, description="Provider for the tool-calling agent (defaults to default_provider)"
    )
    synthesis_provider: ProviderName | None = Field(
        None, description="Provider for answer synthesis (defaults to default_provider)"
    )
    planner_provider: ProviderName | None = Field(
        None, description="Provider for the step planner (defaults to default_provider)"
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_model: str = Field(default="gpt-4o", description="OpenAI model for complex tasks")
    openai_model_mini: str = Field(default="gpt-4o-mini", description="OpenAI lightweight model")

    # Anthropic configuration
    anthropic_api_key: str | None = Field(
        None,
        description="Anthropic API key",
        min_length=20,
    )
    anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022", description="Anthropic model for complex tasks"
    )
    anthropic_model_mini: str = Field(
        default="claude-3-5-haiku-20241022", description="Anthropic lightweight model"
    )

    # Google configuration
    google_api_key: str | None = Field(None, description="Google AI API key")
    google_model: str = Field(
        default="gemini-2.5-flash", description="Google model for tool calling"
    )
    google_model_mini: str = Field(
        default="gemini-2.5-flash-lite", description="Google lightweight model"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for an OpenAI-compatible local server (Ollama, vLLM, LM Studio)",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    # Common settings
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Temperature for agent turns",
    )
    max_tokens: int = Field(
        default=4000,
        gt=0,
        le=32000,
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=60,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key", "anthropic_api_key")
    @classmethod
    def check_key_prefix(cls, v: str | None, info: ValidationInfo) -> str | None:
        provider, prefix = _KEY_PREFIXES[info.field_name]
        if v and not v.startswith(prefix):
            raise ValueError(f"{provider} API key must start with '{prefix}'")
        return v

    def key_for(self, provider: str) -> str | None:
        """Return the configured API key for a provider (None for local)."""
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
        }.get(provider)


class AgentSettings(BaseSettings):
    """Query agent behaviour."""

    strategy: Literal["agentic", "planned"] = Field(
        default="agentic",
        description="'agentic' runs the tool-calling loop, 'planned' plans steps up front",
    )
    max_iterations: int = Field(
        default=5, ge=1, le=20, description="Maximum model turns per question"
    )
    max_sql_retries: int = Field(
        default=2, ge=0, le=10, description="Extra attempts per SQL statement"
    )
    sql_retry_backoff: float = Field(
        default=0.0, ge=0.0, description="Seconds to wait before each SQL retry (linear)"
    )
    history_limit: int = Field(
        default=5, ge=0, description="Prior exchanges embedded into the prompt"
    )
    schema_search_limit: int = Field(
        default=15, ge=1, le=100, description="Candidate tables requested from schema search"
    )
    chart_max_points: int = Field(
        default=20, ge=1, le=20, description="Maximum chart data points"
    )
    tool_result_max_rows: int = Field(
        default=200, ge=1, description="Rows sent back to the model per tool result"
    )
    read_only_guard: bool = Field(
        default=True, description="Reject anything but a single SELECT before execution"
    )
    chart_fallback_enabled: bool = Field(
        default=True,
        description="Derive a chart from the last result when the model does not provide one",
    )
    model_timeout: float = Field(
        default=90.0, gt=0, description="Seconds allowed for one model call"
    )
    sql_timeout: float = Field(
        default=60.0, gt=0, description="Seconds allowed for one SQL attempt"
    )
    synthesis_temperature: float = Field(
        default=0.2, ge=0.0, le=2.0, description="Temperature for the fallback answer"
    )
    synthesis_sample_rows: int = Field(
        default=10, ge=1, le=100, description="Rows per query shown to the synthesis model"
    )
    max_plan_steps: int = Field(
        default=8, ge=1, le=50, description="Upper bound on executed steps in planned mode"
    )
    refinement_large_result: int = Field(
        default=1000, ge=1, description="Row count that triggers an early refinement"
    )

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore",
    )


class ServicesSettings(BaseSettings):
    """HTTP collaborators (schema search and SQL proxy)."""

    api_base_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the backend that hosts schema search and SQL execution",
    )
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="SERVICES_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stderr only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Route the root logger to stderr (and ``file`` when set) at ``level``."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=self.level,
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class Settings(BaseSettings):
    """
    Top-level settings, one nested section per concern.

    Each section reads its own prefixed variables (``LLM_``, ``AGENT_``,
    ``SERVICES_``, ``LOG_``); ``ENVIRONMENT`` and ``APP_NAME`` live here.
    Building a Settings instance also configures logging.

    Example:
        >>> get_settings().agent.max_iterations
        5
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="QueryPilot", description="Name used in log lines")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    services: ServicesSettings = Field(default_factory=ServicesSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        logging.getLogger(__name__).info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "llm_provider": self.llm.default_provider,
                "strategy": self.agent.strategy,
                "max_iterations": self.agent.max_iterations,
                "api_base_url": self.services.api_base_url,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    """Let the project .env override the process environment unless told otherwise."""
    env_source = os.getenv("QUERYPILOT_ENV_SOURCE", "dotenv").lower()
    if env_source in {"dotenv", "envfile", "file"} and _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next ``get_settings`` re-reads the environment."""
    get_settings.cache_clear()
