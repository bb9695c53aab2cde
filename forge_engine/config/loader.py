"""Configuration loading with environment detection."""

import os
from pathlib import Path
from typing import Any, Optional

import structlog
from dotenv import load_dotenv

from forge_engine.exceptions import ConfigurationError, InvalidConfigError

from .environments import DevelopmentConfig, ProductionConfig, TestingConfig
from .features import FeatureFlags
from .settings import Settings

logger = structlog.get_logger()


def load_config(
    env: Optional[str] = None, config_file: Optional[Path] = None
) -> Settings:
    """Load configuration based on environment.

    Args:
        env: Environment name (development, testing, production)
        config_file: Optional path to configuration file

    Returns:
        Configured Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    env_file = config_file or Path(".env")
    if env_file.exists():
        logger.info("Loading .env file", path=str(env_file))
        load_dotenv(env_file)
    else:
        logger.warning("No .env file found", path=str(env_file))

    env = env or os.getenv("ENVIRONMENT", "development")
    logger.info("Loading configuration", environment=env)

    try:
        logger.debug(
            "Environment variables check",
            anthropic_api_key_set=bool(os.getenv("ANTHROPIC_API_KEY")),
            openai_api_key_set=bool(os.getenv("OPENAI_API_KEY")),
            ai_default_provider=os.getenv("AI_DEFAULT_PROVIDER"),
            database_url=os.getenv("DATABASE_URL"),
        )

        settings = Settings()

        settings = _apply_environment_overrides(settings, env)

        _validate_config(settings)

        logger.info(
            "Configuration loaded successfully",
            environment=env,
            debug=settings.debug,
            database_url=settings.database_url,
            features_enabled=FeatureFlags(settings).get_enabled_features(),
        )

        return settings

    except Exception as e:
        logger.error("Failed to load configuration", error=str(e), environment=env)
        raise ConfigurationError(f"Configuration loading failed: {e}") from e


def _apply_environment_overrides(settings: Settings, env: Optional[str]) -> Settings:
    """Apply environment-specific configuration overrides."""
    overrides = {}

    if env == "development":
        overrides = DevelopmentConfig.as_dict()
    elif env == "testing":
        overrides = TestingConfig.as_dict()
    elif env == "production":
        overrides = ProductionConfig.as_dict()
    else:
        logger.warning("Unknown environment, using default settings", environment=env)

    for key, value in overrides.items():
        if hasattr(settings, key):
            setattr(settings, key, value)
            logger.debug(
                "Applied environment override", key=key, value=value, environment=env
            )

    return settings


def _validate_config(settings: Settings) -> None:
    """Perform additional runtime validation."""
    if settings.database_url.startswith("sqlite:///"):
        db_path = settings.database_path
        if db_path:
            db_path.parent.mkdir(parents=True, exist_ok=True)

    if settings.agent_max_tokens <= 0:
        raise InvalidConfigError("agent_max_tokens must be positive")

    if settings.ai_step_max_tokens <= 0:
        raise InvalidConfigError("ai_step_max_tokens must be positive")

    if settings.agent_default_max_actions < 0:
        raise InvalidConfigError("agent_default_max_actions must not be negative")

    if settings.agent_run_timeout_seconds <= 0:
        raise InvalidConfigError("agent_run_timeout_seconds must be positive")

    if settings.ai_request_timeout_seconds <= 0:
        raise InvalidConfigError("ai_request_timeout_seconds must be positive")

    if settings.event_bus_max_listeners <= 0:
        raise InvalidConfigError("event_bus_max_listeners must be positive")

    if settings.board_gateway and ":" not in settings.board_gateway:
        raise InvalidConfigError(
            "board_gateway must be an import path of the form 'module:factory'"
        )


def create_test_config(**overrides: Any) -> Settings:
    """Create configuration for testing with optional overrides.

    Args:
        **overrides: Configuration values to override

    Returns:
        Settings instance configured for testing
    """
    test_values = TestingConfig.as_dict()

    test_values.update(
        {
            "database_url": "sqlite:///data/test-forge.db",
            "anthropic_api_key": None,
            "openai_api_key": None,
        }
    )

    test_values.update(overrides)

    return Settings(_env_file=None, **test_values)
