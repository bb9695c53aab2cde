"""Server-sent event decoding over an httpx streaming response."""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import httpx


DONE_SENTINEL = "[DONE]"


@dataclass
class ServerSentEvent:
    event: Optional[str]
    data: str

    def json(self) -> Dict[str, Any]:
        return json.loads(self.data)


async def iter_sse(response: httpx.Response) -> AsyncIterator[ServerSentEvent]:
    """Yield events from a ``text/event-stream`` response.

    Multi-line ``data:`` fields are joined with newlines; comments and
    unknown fields are skipped.
    """
    event_name: Optional[str] = None
    data_lines = []

    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                yield ServerSentEvent(event=event_name, data="\n".join(data_lines))
            event_name = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_name = value
        elif name == "data":
            data_lines.append(value)

    if data_lines:
        yield ServerSentEvent(event=event_name, data="\n".join(data_lines))
