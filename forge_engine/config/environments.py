"""Environment-specific configuration overrides."""

from typing import Any, Dict


class _EnvironmentConfig:
    """Base for environment override sets."""

    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Return config as dictionary."""
        return {
            key: value
            for klass in reversed(cls.__mro__)
            if klass is not object
            for key, value in vars(klass).items()
            if not key.startswith("_")
            and not callable(value)
            and not isinstance(value, classmethod)
        }


class DevelopmentConfig(_EnvironmentConfig):
    """Development environment overrides."""

    debug: bool = True
    development_mode: bool = True
    log_level: str = "DEBUG"
    agent_run_timeout_seconds: float = 1800  # Longer timeout for debugging


class TestingConfig(_EnvironmentConfig):
    """Testing environment configuration."""

    debug: bool = True
    development_mode: bool = True
    enable_scheduler: bool = False
    agent_run_timeout_seconds: float = 30  # Faster timeout for tests
    ai_request_timeout_seconds: float = 10
    webhook_timeout_seconds: float = 2


class ProductionConfig(_EnvironmentConfig):
    """Production environment configuration."""

    debug: bool = False
    development_mode: bool = False
    log_level: str = "INFO"
    # Use stricter defaults for production
    agent_max_rounds: int = 15
