"""Agent path: guardrails, run loop and trigger handling."""

from .engine import AgentEngine, build_event_prompt, match_event_trigger
from .guardrails import GuardrailDenial, allowed_tools, check_tool_call
from .runner import AgentRunner

__all__ = [
    "AgentEngine",
    "AgentRunner",
    "GuardrailDenial",
    "allowed_tools",
    "build_event_prompt",
    "check_tool_call",
    "match_event_trigger",
]
