"""Trigger matching and trigger-data extraction for domain events.

Every event class in ``DOMAIN_EVENT_TYPES`` must have an entry in
``_EVENT_DETAILS``; adding an event kind without one fails at import.
"""

from typing import Any, Callable, Dict, Type

from ..events.types import (
    DOMAIN_EVENT_TYPES,
    ColumnValueChanged,
    DomainEvent,
    ItemCreated,
    ItemDeleted,
    ItemUpdated,
)
from ..storage.models import AutomationTrigger, AutomationTriggerType


def _item_created_details(event: ItemCreated) -> Dict[str, Any]:
    return {"groupId": event.group_id, "columnValues": dict(event.column_values)}


def _item_updated_details(event: ItemUpdated) -> Dict[str, Any]:
    return {
        "field": event.field,
        "oldValue": event.old_value,
        "newValue": event.new_value,
    }


def _column_changed_details(event: ColumnValueChanged) -> Dict[str, Any]:
    return {
        "columnId": event.column_id,
        "oldValue": event.old_value,
        "newValue": event.new_value,
    }


def _item_deleted_details(event: ItemDeleted) -> Dict[str, Any]:
    return {}


_EVENT_DETAILS: Dict[Type[DomainEvent], Callable[[Any], Dict[str, Any]]] = {
    ItemCreated: _item_created_details,
    ItemUpdated: _item_updated_details,
    ColumnValueChanged: _column_changed_details,
    ItemDeleted: _item_deleted_details,
}

_missing = set(DOMAIN_EVENT_TYPES) - set(_EVENT_DETAILS)
if _missing:
    raise TypeError(
        "No trigger data mapping for event types: "
        + ", ".join(sorted(cls.__name__ for cls in _missing))
    )


def build_trigger_data(event: DomainEvent) -> Dict[str, Any]:
    """Snapshot of the event fields handed to actions and stored in the log."""
    data: Dict[str, Any] = {
        "eventType": event.type,
        "boardId": event.board_id,
        "itemId": event.item_id,
        "actorId": event.actor_id,
    }
    data.update(_EVENT_DETAILS[type(event)](event))
    return data


def event_column_values(event: DomainEvent) -> Dict[str, Any]:
    """Column values an event makes visible to condition evaluation."""
    if isinstance(event, ColumnValueChanged):
        return {event.column_id: event.new_value}
    if isinstance(event, ItemCreated):
        return dict(event.column_values)
    return {}


def match_trigger(trigger: AutomationTrigger, event: DomainEvent) -> bool:
    """Whether an automation trigger fires for an event.

    ``date_arrived``, ``recurring`` and ``webhook`` triggers never fire on
    domain events.
    """
    config = trigger.config

    if trigger.type == AutomationTriggerType.STATUS_CHANGE:
        if not isinstance(event, ColumnValueChanged):
            return False
        if config.get("columnId") and config["columnId"] != event.column_id:
            return False
        if "fromValue" in config and config["fromValue"] != event.old_value:
            return False
        if "toValue" in config and config["toValue"] != event.new_value:
            return False
        return True

    if trigger.type == AutomationTriggerType.COLUMN_CHANGE:
        if not isinstance(event, ColumnValueChanged):
            return False
        return not config.get("columnId") or config["columnId"] == event.column_id

    if trigger.type == AutomationTriggerType.ITEM_CREATED:
        return isinstance(event, ItemCreated)

    if trigger.type == AutomationTriggerType.ITEM_DELETED:
        return isinstance(event, ItemDeleted)

    return False
