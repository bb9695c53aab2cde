"""Vendor adapters implementing :class:`forge_engine.ai.types.AIProvider`."""

from .anthropic import AnthropicProvider
from .openai_compat import OpenAICompatProvider

__all__ = ["AnthropicProvider", "OpenAICompatProvider"]
