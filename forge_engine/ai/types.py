"""Vendor-neutral chat types shared by every provider adapter.

The agent loop and one-shot callers only ever see these types. Each adapter
translates them to and from its own wire format.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Union

from ..exceptions import ProviderStreamError

Role = Literal["user", "assistant", "tool"]
StopReason = Literal["end_turn", "tool_use"]


@dataclass
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any]
    type: Literal["tool_use"] = "tool_use"


@dataclass
class ToolResultBlock:
    tool_call_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class Message:
    """One chat turn. ``content`` is plain text or a list of blocks."""

    role: Role
    content: Union[str, List[ContentBlock]]

    def blocks(self) -> List[ContentBlock]:
        return self.content if isinstance(self.content, list) else []


@dataclass
class ToolDefinition:
    """A callable capability described by a JSON schema."""

    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ToolCall:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamResult:
    """Terminal payload of a streamed turn."""

    tool_calls: List[ToolCall]
    stop_reason: StopReason


@dataclass
class ProviderModel:
    id: str
    display_name: str
    max_tokens: int


@dataclass
class ProviderInfo:
    provider_id: str
    display_name: str
    models: List[ProviderModel]
    default_model: str
    is_default: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "displayName": self.display_name,
            "models": [
                {"id": m.id, "displayName": m.display_name, "maxTokens": m.max_tokens}
                for m in self.models
            ],
            "defaultModel": self.default_model,
            "isDefault": self.is_default,
        }


class ChatStream:
    """Async iterator of text deltas with a deferred terminal result.

    Adapters feed it a generator that yields ``str`` deltas and, exactly
    once, a :class:`StreamResult` after the transport has finished. Text is
    observable before the result; ``result()`` resolves only once the
    underlying generator is exhausted.
    """

    def __init__(self, events: AsyncIterator[Union[str, StreamResult]]):
        self._events = events
        self._result: Optional[StreamResult] = None
        self._exhausted = False

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> str:
        while not self._exhausted:
            try:
                item = await self._events.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                break
            if isinstance(item, StreamResult):
                self._result = item
                continue
            return item
        raise StopAsyncIteration

    async def result(self) -> StreamResult:
        """Wait for the transport to finish and return the terminal result."""
        async for _ in self:
            pass
        if self._result is None:
            raise ProviderStreamError("Stream ended without a final result")
        return self._result

    async def aclose(self) -> None:
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()
        self._exhausted = True


class AIProvider(ABC):
    """Narrow contract every vendor adapter implements."""

    provider_id: str
    display_name: str
    models: List[ProviderModel]

    @property
    def default_model(self) -> str:
        return self.models[0].id

    def has_model(self, model: str) -> bool:
        return any(m.id == model for m in self.models)

    @abstractmethod
    def stream_chat(
        self,
        model: str,
        system_prompt: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        max_tokens: int,
    ) -> ChatStream:
        """Start a streamed turn. Nothing is sent until iteration begins."""

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: List[Message],
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        """Single non-streaming turn returning the reply text."""

    async def close(self) -> None:
        """Release transport resources."""
