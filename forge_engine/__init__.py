"""Forge Engine: automations and AI agents reacting to board events."""

__version__ = "0.1.0"
