"""Event bus system for decoupling board mutations from automations and agents."""

from .bus import EventBus, EventHandler
from .types import (
    DOMAIN_EVENT_TYPES,
    EVENT_TYPE_NAMES,
    WILDCARD,
    ColumnValueChanged,
    DomainEvent,
    ItemCreated,
    ItemDeleted,
    ItemUpdated,
)

__all__ = [
    "EventBus",
    "EventHandler",
    "DomainEvent",
    "ItemCreated",
    "ItemUpdated",
    "ColumnValueChanged",
    "ItemDeleted",
    "DOMAIN_EVENT_TYPES",
    "EVENT_TYPE_NAMES",
    "WILDCARD",
]
