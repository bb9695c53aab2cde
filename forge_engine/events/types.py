"""Domain events published after committed board/item mutations.

One frozen dataclass per event kind. ``DOMAIN_EVENT_TYPES`` lists every
variant; matchers that switch on event kind should cover all of them.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar, Dict, Tuple, Type

WILDCARD = "*"


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base event. All events carry board, item, and actor ids."""

    type: ClassVar[str] = "domain_event"

    board_id: str
    item_id: str
    actor_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return self.type


@dataclass(frozen=True, kw_only=True)
class ItemCreated(DomainEvent):
    """An item was added to a board group."""

    type: ClassVar[str] = "item_created"

    group_id: str = ""
    column_values: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class ItemUpdated(DomainEvent):
    """A non-column field of an item changed (name, group, ...)."""

    type: ClassVar[str] = "item_updated"

    field: str = ""
    old_value: Any = None
    new_value: Any = None


@dataclass(frozen=True, kw_only=True)
class ColumnValueChanged(DomainEvent):
    """One column value of an item changed."""

    type: ClassVar[str] = "column_value_changed"

    column_id: str = ""
    old_value: Any = None
    new_value: Any = None


@dataclass(frozen=True, kw_only=True)
class ItemDeleted(DomainEvent):
    """An item was removed from its board."""

    type: ClassVar[str] = "item_deleted"


DOMAIN_EVENT_TYPES: Tuple[Type[DomainEvent], ...] = (
    ItemCreated,
    ItemUpdated,
    ColumnValueChanged,
    ItemDeleted,
)

EVENT_TYPE_NAMES = frozenset(cls.type for cls in DOMAIN_EVENT_TYPES)
