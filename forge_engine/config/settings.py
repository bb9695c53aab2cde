"""Configuration management using Pydantic Settings.

Features:
- Environment variable loading
- Type validation
- Default values
- Computed properties
- Environment-specific settings
"""

from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from forge_engine.utils.constants import (
    DEFAULT_AGENT_MAX_ACTIONS,
    DEFAULT_AGENT_MAX_ROUNDS,
    DEFAULT_AGENT_MAX_TOKENS,
    DEFAULT_AGENT_RUN_TIMEOUT_SECONDS,
    DEFAULT_AI_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_AI_STEP_MAX_TOKENS,
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_MODELS,
    DEFAULT_ANTHROPIC_VERSION,
    DEFAULT_DATABASE_URL,
    DEFAULT_MAX_LISTENERS_WARNING,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODELS,
    DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Anthropic (Messages API)
    anthropic_api_key: Optional[SecretStr] = Field(
        None, description="Anthropic API key; enables the anthropic provider"
    )
    anthropic_base_url: str = Field(
        DEFAULT_ANTHROPIC_BASE_URL, description="Anthropic API base URL"
    )
    anthropic_version: str = Field(
        DEFAULT_ANTHROPIC_VERSION, description="anthropic-version request header"
    )
    anthropic_models: Annotated[List[str], NoDecode] = Field(
        default=list(DEFAULT_ANTHROPIC_MODELS),
        description="Anthropic model catalog; the first entry is the default",
    )

    # OpenAI-compatible (Chat Completions API)
    openai_api_key: Optional[SecretStr] = Field(
        None, description="OpenAI-compatible API key; enables the openai provider"
    )
    openai_base_url: str = Field(
        DEFAULT_OPENAI_BASE_URL, description="OpenAI-compatible API base URL"
    )
    openai_models: Annotated[List[str], NoDecode] = Field(
        default=list(DEFAULT_OPENAI_MODELS),
        description="OpenAI-compatible model catalog; the first entry is the default",
    )
    openai_provider_name: str = Field(
        "OpenAI", description="Display name for the OpenAI-compatible provider"
    )

    # Provider selection
    ai_default_provider: Optional[str] = Field(
        None, description="Default provider id (falls back to first available)"
    )
    ai_default_model: Optional[str] = Field(
        None, description="Default model override for the default provider"
    )
    ai_request_timeout_seconds: float = Field(
        DEFAULT_AI_REQUEST_TIMEOUT_SECONDS,
        description="HTTP timeout for provider requests",
    )

    # Agent runs
    agent_max_tokens: int = Field(
        DEFAULT_AGENT_MAX_TOKENS, description="Max tokens per agent model turn"
    )
    agent_default_max_actions: int = Field(
        DEFAULT_AGENT_MAX_ACTIONS,
        description="Action budget used when an agent has no guardrails stored",
    )
    agent_max_rounds: int = Field(
        DEFAULT_AGENT_MAX_ROUNDS,
        description="Max provider round-trips per agent run",
        ge=1,
    )
    agent_run_timeout_seconds: float = Field(
        DEFAULT_AGENT_RUN_TIMEOUT_SECONDS,
        description="Wall-clock limit for one agent run",
    )

    # Automations
    ai_step_max_tokens: int = Field(
        DEFAULT_AI_STEP_MAX_TOKENS, description="Token budget for ai_step actions"
    )
    webhook_timeout_seconds: float = Field(
        DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
        description="HTTP timeout for webhook actions",
    )

    # Event bus
    event_bus_max_listeners: int = Field(
        DEFAULT_MAX_LISTENERS_WARNING,
        description="Subscriber count past which the bus warns about leaks",
    )

    # Storage
    database_url: str = Field(
        DEFAULT_DATABASE_URL, description="Database connection URL"
    )

    # Collaborators
    board_gateway: Optional[str] = Field(
        None,
        description="Import path 'module:factory' returning the BoardGateway",
    )

    # Features
    enable_scheduler: bool = Field(
        True, description="Run cron schedule triggers for agents and automations"
    )

    # Monitoring
    log_level: str = Field("INFO", description="Logging level")

    # Development
    debug: bool = Field(False, description="Enable debug mode")
    development_mode: bool = Field(False, description="Enable development features")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("anthropic_models", "openai_models", mode="before")
    @classmethod
    def parse_model_list(cls, v: Any) -> Optional[List[str]]:
        """Parse comma-separated model ids."""
        if v is None:
            return []
        if isinstance(v, str):
            return [model.strip() for model in v.split(",") if model.strip()]
        if isinstance(v, list):
            return [str(model).strip() for model in v if str(model).strip()]
        return v  # type: ignore[no-any-return]

    @field_validator("ai_default_provider", "ai_default_model", "board_gateway", mode="before")
    @classmethod
    def blank_as_none(cls, v: Any) -> Optional[str]:
        """Treat blank strings as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v  # type: ignore[no-any-return]

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = str(v).upper()
        if level not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return level

    @model_validator(mode="after")
    def validate_cross_field_dependencies(self) -> "Settings":
        """Validate dependencies between fields."""
        if self.anthropic_api_key and not self.anthropic_models:
            raise ValueError("anthropic_models required when anthropic_api_key is set")
        if self.openai_api_key and not self.openai_models:
            raise ValueError("openai_models required when openai_api_key is set")
        return self

    @property
    def database_path(self) -> Optional[Path]:
        """Get database path for SQLite URLs."""
        if self.database_url.startswith("sqlite:///"):
            return Path(self.database_url[10:]).resolve()
        return None

    @property
    def anthropic_api_key_str(self) -> Optional[str]:
        """Get Anthropic API key as string."""
        return self.anthropic_api_key.get_secret_value() if self.anthropic_api_key else None

    @property
    def openai_api_key_str(self) -> Optional[str]:
        """Get OpenAI-compatible API key as string."""
        return self.openai_api_key.get_secret_value() if self.openai_api_key else None
