"""OpenAI-compatible Chat Completions adapter over httpx.

Works against any server implementing ``/chat/completions`` with SSE
streaming. Tool-call arguments arrive as fragments keyed by index and are
only parsed once a finish reason is seen.
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import structlog

from ...exceptions import ProviderError, ProviderResponseError, ProviderStreamError
from ...utils.constants import DEFAULT_AI_REQUEST_TIMEOUT_SECONDS, DEFAULT_OPENAI_BASE_URL
from ..accumulator import ToolCallAccumulator
from ..sse import DONE_SENTINEL, iter_sse
from ..tools import to_openai_tools
from ..types import (
    AIProvider,
    ChatStream,
    Message,
    ProviderModel,
    StreamResult,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)

logger = structlog.get_logger()


def to_openai_messages(
    system_prompt: Optional[str], messages: List[Message]
) -> List[Dict[str, Any]]:
    """Translate neutral messages to the Chat Completions shape.

    Each tool result becomes its own ``tool`` message.
    """
    result: List[Dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if msg.role == "tool":
            for block in msg.blocks():
                if isinstance(block, ToolResultBlock):
                    result.append(
                        {
                            "role": "tool",
                            "tool_call_id": block.tool_call_id,
                            "content": block.content,
                        }
                    )
            continue

        if msg.role == "assistant" and isinstance(msg.content, list):
            text = ""
            tool_calls = []
            for block in msg.content:
                if isinstance(block, TextBlock):
                    text += block.text
                elif isinstance(block, ToolUseBlock):
                    tool_calls.append(
                        {
                            "id": block.id,
                            "type": "function",
                            "function": {
                                "name": block.name,
                                "arguments": json.dumps(block.input),
                            },
                        }
                    )
            assistant: Dict[str, Any] = {"role": "assistant", "content": text or None}
            if tool_calls:
                assistant["tool_calls"] = tool_calls
            result.append(assistant)
            continue

        result.append(
            {
                "role": msg.role,
                "content": msg.content if isinstance(msg.content, str) else "",
            }
        )

    return result


class OpenAICompatProvider(AIProvider):
    """Vendor adapter for OpenAI and compatible servers."""

    provider_id = "openai"

    def __init__(
        self,
        api_key: str,
        models: List[ProviderModel],
        display_name: str = "OpenAI",
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        timeout: float = DEFAULT_AI_REQUEST_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.display_name = display_name
        self.models = models
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._headers = {"Authorization": f"Bearer {api_key}"}

    def stream_chat(
        self,
        model: str,
        system_prompt: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        max_tokens: int,
    ) -> ChatStream:
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": to_openai_messages(system_prompt, messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = to_openai_tools(tools)
        return ChatStream(self._stream_events(payload))

    async def _stream_events(
        self, payload: Dict[str, Any]
    ) -> AsyncIterator[Union[str, StreamResult]]:
        accumulator = ToolCallAccumulator()
        result: Optional[StreamResult] = None

        try:
            async with self._client.stream(
                "POST", self._url, json=payload, headers=self._headers
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode(errors="replace")
                    raise ProviderStreamError(
                        f"{self.display_name} API error {response.status_code}: "
                        f"{body[:500]}"
                    )

                async for sse in iter_sse(response):
                    if sse.data.strip() == DONE_SENTINEL:
                        break
                    try:
                        chunk = sse.json()
                    except ValueError:
                        logger.warning("Skipping undecodable stream chunk", data=sse.data[:200])
                        continue

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    choice = choices[0]
                    delta = choice.get("delta") or {}

                    if delta.get("content"):
                        yield delta["content"]

                    for fragment in delta.get("tool_calls") or []:
                        function = fragment.get("function") or {}
                        accumulator.add_fragment(
                            fragment.get("index", 0),
                            call_id=fragment.get("id"),
                            name=function.get("name"),
                            arguments=function.get("arguments"),
                        )

                    finish_reason = choice.get("finish_reason")
                    if finish_reason and result is None:
                        result = StreamResult(
                            tool_calls=accumulator.finalize(),
                            stop_reason=(
                                "tool_use" if finish_reason == "tool_calls" else "end_turn"
                            ),
                        )
        except httpx.HTTPError as e:
            raise ProviderStreamError(
                f"{self.display_name} request failed: {e}"
            ) from e

        if result is None:
            raise ProviderStreamError(
                f"{self.display_name} stream ended without a finish reason"
            )
        yield result

    async def complete(
        self,
        model: str,
        messages: List[Message],
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": to_openai_messages(system_prompt, messages),
        }

        try:
            response = await self._client.post(
                self._url, json=payload, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderResponseError(
                f"{self.display_name} API error {e.response.status_code}: "
                f"{e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.display_name} request failed: {e}") from e

        choices = response.json().get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
