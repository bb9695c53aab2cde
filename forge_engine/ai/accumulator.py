"""Reassembly of tool calls streamed as argument fragments."""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from .types import ToolCall

logger = structlog.get_logger()


@dataclass
class _PendingCall:
    id: str = ""
    name: str = ""
    fragments: List[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Collect per-index tool-call fragments until the turn finishes.

    The first fragment seen for an index carries the call id and function
    name; later fragments only append argument text. Arguments are parsed
    once, in ``finalize``.
    """

    def __init__(self) -> None:
        self._calls: Dict[int, _PendingCall] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def add_fragment(
        self,
        index: int,
        call_id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        pending = self._calls.get(index)
        if pending is None:
            pending = self._calls[index] = _PendingCall()
        if call_id and not pending.id:
            pending.id = call_id
        if name and not pending.name:
            pending.name = name
        if arguments:
            pending.fragments.append(arguments)

    def arguments_text(self, index: int) -> str:
        pending = self._calls.get(index)
        return "".join(pending.fragments) if pending else ""

    def finalize(self) -> List[ToolCall]:
        """Parse accumulated arguments, in index order.

        Malformed or non-object JSON becomes ``{}``.
        """
        calls = []
        for index in sorted(self._calls):
            pending = self._calls[index]
            text = "".join(pending.fragments)
            try:
                parsed = json.loads(text) if text else {}
            except json.JSONDecodeError as e:
                logger.warning(
                    "Malformed tool call arguments, using empty input",
                    tool=pending.name,
                    call_id=pending.id,
                    error=str(e),
                )
                parsed = {}
            if not isinstance(parsed, dict):
                logger.warning(
                    "Tool call arguments are not an object, using empty input",
                    tool=pending.name,
                    call_id=pending.id,
                )
                parsed = {}
            calls.append(ToolCall(id=pending.id, name=pending.name, input=parsed))
        return calls
