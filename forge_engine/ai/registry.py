"""Process-wide registry of configured AI providers."""

from typing import Dict, List, Optional, Tuple

import httpx
import structlog

from ..config.settings import Settings
from ..exceptions import (
    NoProviderConfiguredError,
    UnknownModelError,
    UnknownProviderError,
)
from ..utils.constants import DEFAULT_MODEL_MAX_TOKENS
from .providers import AnthropicProvider, OpenAICompatProvider
from .types import AIProvider, ProviderInfo, ProviderModel

logger = structlog.get_logger()


def _catalog(model_ids: List[str]) -> List[ProviderModel]:
    return [
        ProviderModel(id=model_id, display_name=model_id, max_tokens=DEFAULT_MODEL_MAX_TOKENS)
        for model_id in model_ids
    ]


class ProviderRegistry:
    """Resolve providers and models by id with first-available fallback."""

    def __init__(
        self,
        providers: List[AIProvider],
        default_provider_id: Optional[str] = None,
        default_model_id: Optional[str] = None,
    ):
        self._providers: Dict[str, AIProvider] = {p.provider_id: p for p in providers}
        self._default_model_id = default_model_id

        if default_provider_id and default_provider_id not in self._providers:
            logger.warning(
                "Configured default AI provider not available, falling back",
                provider=default_provider_id,
                available=list(self._providers),
            )
            default_provider_id = None
        self._default_provider_id = default_provider_id or next(
            iter(self._providers), None
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "ProviderRegistry":
        """Enable each provider whose credentials are present."""
        providers: List[AIProvider] = []

        if settings.anthropic_api_key_str:
            providers.append(
                AnthropicProvider(
                    api_key=settings.anthropic_api_key_str,
                    models=_catalog(settings.anthropic_models),
                    base_url=settings.anthropic_base_url,
                    api_version=settings.anthropic_version,
                    timeout=settings.ai_request_timeout_seconds,
                    client=client,
                )
            )

        if settings.openai_api_key_str:
            providers.append(
                OpenAICompatProvider(
                    api_key=settings.openai_api_key_str,
                    models=_catalog(settings.openai_models),
                    display_name=settings.openai_provider_name,
                    base_url=settings.openai_base_url,
                    timeout=settings.ai_request_timeout_seconds,
                    client=client,
                )
            )

        registry = cls(
            providers,
            default_provider_id=settings.ai_default_provider,
            default_model_id=settings.ai_default_model,
        )
        logger.info(
            "AI providers initialized",
            providers=[p.provider_id for p in providers],
            default_provider=registry.default_provider_id,
        )
        return registry

    @property
    def default_provider_id(self) -> Optional[str]:
        return self._default_provider_id

    def __bool__(self) -> bool:
        return bool(self._providers)

    def get_provider(self, provider_id: Optional[str] = None) -> AIProvider:
        """Return the named provider, or the default one.

        Raises:
            NoProviderConfiguredError: No provider has credentials.
            UnknownProviderError: The named provider is not configured.
        """
        provider_id = provider_id or self._default_provider_id
        if not provider_id:
            raise NoProviderConfiguredError(
                "No AI providers configured. Set ANTHROPIC_API_KEY or OPENAI_API_KEY."
            )
        provider = self._providers.get(provider_id)
        if provider is None:
            raise UnknownProviderError(provider_id, list(self._providers))
        return provider

    def default_model(self, provider_id: Optional[str] = None) -> str:
        if not provider_id and self._default_model_id:
            return self._default_model_id
        return self.get_provider(provider_id).default_model

    def resolve(
        self, provider_id: Optional[str] = None, model: Optional[str] = None
    ) -> Tuple[AIProvider, str]:
        """Resolve a provider and a model it offers.

        Raises:
            UnknownModelError: The model is not in the provider's catalog.
        """
        provider = self.get_provider(provider_id)
        model = model or self.default_model(provider_id)
        if not provider.has_model(model):
            raise UnknownModelError(provider.provider_id, model)
        return provider, model

    def resolve_model(
        self, provider_id: Optional[str] = None, model: Optional[str] = None
    ) -> str:
        return self.resolve(provider_id, model)[1]

    def available_providers(self) -> List[ProviderInfo]:
        return [
            ProviderInfo(
                provider_id=p.provider_id,
                display_name=p.display_name,
                models=list(p.models),
                default_model=p.default_model,
                is_default=p.provider_id == self._default_provider_id,
            )
            for p in self._providers.values()
        ]

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
