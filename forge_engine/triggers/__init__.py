"""Trigger listener lifecycle."""

from .registry import TriggerRegistry, TriggerSource

__all__ = ["TriggerRegistry", "TriggerSource"]
