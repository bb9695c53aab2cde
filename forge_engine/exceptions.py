"""Custom exceptions for Forge Engine."""

from typing import Optional


class ForgeEngineError(Exception):
    """Base exception for Forge Engine."""


class ConfigurationError(ForgeEngineError):
    """Configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""


class InvalidConfigError(ConfigurationError):
    """Configuration is invalid."""


class NoProviderConfiguredError(ConfigurationError):
    """No AI provider has credentials configured."""


class UnknownProviderError(ConfigurationError):
    """A named AI provider is not available."""

    def __init__(self, provider_id: str, available: Optional[list] = None):
        self.provider_id = provider_id
        self.available = available or []
        super().__init__(
            f"AI provider '{provider_id}' not available. "
            f"Available: {', '.join(self.available) or 'none'}"
        )


class UnknownModelError(ConfigurationError):
    """A named model is not offered by the resolved provider."""

    def __init__(self, provider_id: str, model: str):
        self.provider_id = provider_id
        self.model = model
        super().__init__(f"Model '{model}' is not offered by provider '{provider_id}'")


class ProviderError(ForgeEngineError):
    """AI provider errors."""


class ProviderStreamError(ProviderError):
    """Vendor or network failure while streaming a chat turn."""


class ProviderResponseError(ProviderError):
    """Vendor returned a response the adapter cannot use."""


class ToolExecutionError(ForgeEngineError):
    """An agent tool call failed."""

    def __init__(self, message: str, tool_name: str = ""):
        super().__init__(message)
        self.tool_name = tool_name


class ActionExecutionError(ForgeEngineError):
    """An automation action failed."""

    def __init__(self, message: str, action_type: str = ""):
        super().__init__(message)
        self.action_type = action_type


class NotFoundError(ForgeEngineError):
    """A requested entity does not exist."""

    def __init__(self, resource: str, entity_id: Optional[str] = None):
        self.resource = resource
        self.entity_id = entity_id
        super().__init__(
            f"{resource} '{entity_id}' not found" if entity_id else f"{resource} not found"
        )


class StorageError(ForgeEngineError):
    """Storage-related errors."""
