"""Guardrail checks applied to each tool call an agent requests.

Denials are returned as values and fed back to the model as error tool
results. Nothing here raises.
"""

from dataclasses import dataclass
from typing import Collection, List, Optional

from ..ai.tools import select_tools
from ..ai.types import ToolCall, ToolDefinition
from ..storage.models import AgentModel, Guardrails

ACTION_LIMIT_MESSAGE = "Action limit reached. No more actions allowed in this run."
BOARD_DENIED_MESSAGE = "Access denied: board not in allowed list."


@dataclass(frozen=True)
class GuardrailDenial:
    reason: str
    message: str


def allowed_tools(agent: AgentModel) -> List[ToolDefinition]:
    """Catalog tools the agent lists, minus any its guardrails block."""
    return select_tools(agent.tools, agent.guardrails.blocked_tools or ())


def check_tool_call(
    guardrails: Guardrails,
    call: ToolCall,
    executed_count: int,
    offered_tools: Optional[Collection[str]] = None,
) -> Optional[GuardrailDenial]:
    """Return a denial for ``call``, or None when it may run."""
    if executed_count >= guardrails.max_actions_per_run:
        return GuardrailDenial("action_limit", ACTION_LIMIT_MESSAGE)

    board_id = call.input.get("boardId")
    if guardrails.allowed_board_ids and board_id:
        if board_id not in guardrails.allowed_board_ids:
            return GuardrailDenial("board_not_allowed", BOARD_DENIED_MESSAGE)

    if offered_tools is not None and call.name not in offered_tools:
        return GuardrailDenial(
            "tool_not_allowed", f"Access denied: tool '{call.name}' is not available."
        )

    return None
