"""Automation path: trigger matching, conditions and actions."""

from .actions import ActionExecutor, ActionListResult
from .conditions import evaluate_conditions
from .engine import AutomationEngine
from .matching import build_trigger_data, match_trigger

__all__ = [
    "ActionExecutor",
    "ActionListResult",
    "AutomationEngine",
    "build_trigger_data",
    "evaluate_conditions",
    "match_trigger",
]
