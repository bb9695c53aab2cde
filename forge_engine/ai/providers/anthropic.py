"""Anthropic Messages API adapter over httpx.

Text deltas are streamed as they arrive. Tool-use blocks are reassembled
from ``input_json_delta`` fragments and only surface in the final
:class:`StreamResult`.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import structlog

from ...exceptions import ProviderError, ProviderResponseError, ProviderStreamError
from ...utils.constants import (
    DEFAULT_AI_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_VERSION,
)
from ..accumulator import ToolCallAccumulator
from ..sse import iter_sse
from ..tools import to_anthropic_tools
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


def to_anthropic_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Translate neutral messages to the Messages API shape.

    Tool results must live inside a user message, so each tool-role message
    is merged into the preceding user message when that message already holds
    blocks, or becomes a new user message otherwise.
    """
    result: List[Dict[str, Any]] = []

    for msg in messages:
        if msg.role == "tool":
            tool_results = [
                {
                    "type": "tool_result",
                    "tool_use_id": block.tool_call_id,
                    "content": block.content,
                    "is_error": block.is_error,
                }
                for block in msg.blocks()
                if isinstance(block, ToolResultBlock)
            ]
            last = result[-1] if result else None
            if last and last["role"] == "user" and isinstance(last["content"], list):
                last["content"].extend(tool_results)
            else:
                result.append({"role": "user", "content": tool_results})
            continue

        if msg.role == "assistant" and isinstance(msg.content, list):
            blocks = []
            for block in msg.content:
                if isinstance(block, TextBlock):
                    blocks.append({"type": "text", "text": block.text})
                elif isinstance(block, ToolUseBlock):
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": block.id,
                            "name": block.name,
                            "input": block.input,
                        }
                    )
                else:
                    raise ProviderError(
                        f"Unexpected block type in assistant message: {block.type}"
                    )
            result.append({"role": "assistant", "content": blocks})
            continue

        result.append(
            {
                "role": msg.role,
                "content": msg.content if isinstance(msg.content, str) else "",
            }
        )

    return result


class AnthropicProvider(AIProvider):
    """Vendor adapter for the Anthropic Messages API."""

    provider_id = "anthropic"
    display_name = "Anthropic"

    def __init__(
        self,
        api_key: str,
        models: List[ProviderModel],
        base_url: str = DEFAULT_ANTHROPIC_BASE_URL,
        api_version: str = DEFAULT_ANTHROPIC_VERSION,
        timeout: float = DEFAULT_AI_REQUEST_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.models = models
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._url = f"{base_url.rstrip('/')}/v1/messages"
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": api_version,
            "content-type": "application/json",
        }

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
            "system": system_prompt,
            "messages": to_anthropic_messages(messages),
            "stream": True,
        }
        if tools:
            payload["tools"] = to_anthropic_tools(tools)
        return ChatStream(self._stream_events(payload))

    async def _stream_events(
        self, payload: Dict[str, Any]
    ) -> AsyncIterator[Union[str, StreamResult]]:
        tool_blocks = ToolCallAccumulator()
        stop_reason: Optional[str] = None
        stopped = False

        try:
            async with self._client.stream(
                "POST", self._url, json=payload, headers=self._headers
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode(errors="replace")
                    raise ProviderStreamError(
                        f"Anthropic API error {response.status_code}: {body[:500]}"
                    )

                async for sse in iter_sse(response):
                    try:
                        data = sse.json()
                    except ValueError:
                        logger.warning("Skipping undecodable stream event", data=sse.data[:200])
                        continue

                    event_type = data.get("type") or sse.event
                    if event_type == "content_block_start":
                        block = data.get("content_block") or {}
                        if block.get("type") == "tool_use":
                            tool_blocks.add_fragment(
                                data.get("index", 0),
                                call_id=block.get("id"),
                                name=block.get("name"),
                            )
                    elif event_type == "content_block_delta":
                        delta = data.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield delta["text"]
                        elif delta.get("type") == "input_json_delta":
                            tool_blocks.add_fragment(
                                data.get("index", 0),
                                arguments=delta.get("partial_json"),
                            )
                    elif event_type == "message_delta":
                        stop_reason = (data.get("delta") or {}).get(
                            "stop_reason", stop_reason
                        )
                    elif event_type == "message_stop":
                        stopped = True
                        break
                    elif event_type == "error":
                        error = data.get("error") or {}
                        raise ProviderStreamError(
                            f"Anthropic stream error: {error.get('message', sse.data)}"
                        )
        except httpx.HTTPError as e:
            raise ProviderStreamError(f"Anthropic request failed: {e}") from e

        if not stopped:
            raise ProviderStreamError("Anthropic stream ended before message_stop")

        yield StreamResult(
            tool_calls=tool_blocks.finalize(),
            stop_reason="tool_use" if stop_reason == "tool_use" else "end_turn",
        )

    async def complete(
        self,
        model: str,
        messages: List[Message],
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": to_anthropic_messages(messages),
        }
        if system_prompt:
            payload["system"] = system_prompt

        try:
            response = await self._client.post(
                self._url, json=payload, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderResponseError(
                f"Anthropic API error {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Anthropic request failed: {e}") from e

        for block in response.json().get("content", []):
            if block.get("type") == "text":
                return block.get("text", "")
        raise ProviderResponseError("No text response from AI")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
