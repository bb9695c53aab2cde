"""Provider-agnostic streaming chat layer and agent tool catalog."""

from .accumulator import ToolCallAccumulator
from .registry import ProviderRegistry
from .tools import TOOL_DEFINITIONS, ToolExecutor
from .types import (
    AIProvider,
    ChatStream,
    Message,
    ProviderInfo,
    ProviderModel,
    StreamResult,
    TextBlock,
    ToolCall,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "AIProvider",
    "ChatStream",
    "Message",
    "ProviderInfo",
    "ProviderModel",
    "ProviderRegistry",
    "StreamResult",
    "TextBlock",
    "TOOL_DEFINITIONS",
    "ToolCall",
    "ToolCallAccumulator",
    "ToolDefinition",
    "ToolExecutor",
    "ToolResultBlock",
    "ToolUseBlock",
]
