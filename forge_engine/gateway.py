"""Board/item CRUD collaborator consumed by actions and agent tools.

The engine never touches board data directly. Whatever owns boards, items
and workspaces implements :class:`BoardGateway`; mutations it commits are
published on the event bus unless ``emit_events`` is false.

The CLI builds the gateway from the ``BOARD_GATEWAY`` setting, a
``module:factory`` path. The factory is called with keyword arguments::

    factory(event_bus=..., automation_triggers=..., agent_triggers=...)

``event_bus`` is the :class:`~forge_engine.events.bus.EventBus` committed
mutations are emitted on. The two
:class:`~forge_engine.triggers.registry.TriggerRegistry` objects must be
told about automation and agent changes: ``register(id)`` after a create or
update, ``unregister(id)`` after a delete.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class BoardGateway(Protocol):
    """Async board/item/workspace operations."""

    async def list_boards(self, workspace_id: str) -> List[Dict[str, Any]]: ...

    async def get_board(self, board_id: str) -> Dict[str, Any]: ...

    async def create_board(
        self,
        workspace_id: str,
        name: str,
        actor_id: str,
        description: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    async def add_column(
        self,
        board_id: str,
        title: str,
        column_type: str,
        actor_id: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]: ...

    async def add_group(
        self,
        board_id: str,
        title: str,
        actor_id: str,
        color: Optional[str] = None,
    ) -> Dict[str, Any]: ...

    async def list_items(
        self, board_id: str, group_id: Optional[str] = None
    ) -> List[Dict[str, Any]]: ...

    async def get_item(self, item_id: str) -> Dict[str, Any]: ...

    async def create_item(
        self,
        board_id: str,
        group_id: str,
        name: str,
        actor_id: str,
        column_values: Optional[Dict[str, Any]] = None,
        emit_events: bool = True,
    ) -> Dict[str, Any]: ...

    async def update_item(
        self,
        item_id: str,
        actor_id: str,
        name: Optional[str] = None,
        group_id: Optional[str] = None,
        column_values: Optional[Dict[str, Any]] = None,
        emit_events: bool = True,
    ) -> Dict[str, Any]: ...

    async def delete_item(
        self, item_id: str, actor_id: str, emit_events: bool = True
    ) -> Dict[str, Any]: ...

    async def add_item_update(
        self, item_id: str, body: str, actor_id: str
    ) -> Dict[str, Any]: ...

    async def list_workspace_members(
        self, workspace_id: str
    ) -> List[Dict[str, Any]]: ...
