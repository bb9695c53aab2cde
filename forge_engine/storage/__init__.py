"""SQLite persistence for automations, agents and their execution records."""

from .facade import Storage

__all__ = ["Storage"]
