"""Feature flag management."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .settings import Settings


class FeatureFlags:
    """Feature flag management system."""

    def __init__(self, settings: "Settings"):
        """Initialize with settings."""
        self.settings = settings

    @property
    def anthropic_enabled(self) -> bool:
        """Check if the Anthropic provider has credentials."""
        return self.settings.anthropic_api_key is not None

    @property
    def openai_enabled(self) -> bool:
        """Check if the OpenAI-compatible provider has credentials."""
        return self.settings.openai_api_key is not None

    @property
    def ai_enabled(self) -> bool:
        """Check if any AI provider is available."""
        return self.anthropic_enabled or self.openai_enabled

    @property
    def scheduler_enabled(self) -> bool:
        """Check if cron schedule triggers are enabled."""
        return self.settings.enable_scheduler

    @property
    def development_features_enabled(self) -> bool:
        """Check if development features are enabled."""
        return self.settings.development_mode

    def is_feature_enabled(self, feature_name: str) -> bool:
        """Generic feature check by name."""
        feature_map = {
            "anthropic": self.anthropic_enabled,
            "openai": self.openai_enabled,
            "ai": self.ai_enabled,
            "scheduler": self.scheduler_enabled,
            "development": self.development_features_enabled,
        }
        return feature_map.get(feature_name, False)

    def get_enabled_features(self) -> list[str]:
        """Get list of all enabled features."""
        return [
            name
            for name in ("anthropic", "openai", "scheduler", "development")
            if self.is_feature_enabled(name)
        ]
