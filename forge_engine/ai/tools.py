"""Tool catalog exposed to agents and its dispatch onto the board gateway."""

from typing import Any, Dict, Iterable, List

import structlog

from ..exceptions import ToolExecutionError
from ..gateway import BoardGateway
from .types import ToolDefinition

logger = structlog.get_logger()


def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


def _object(description: str) -> Dict[str, str]:
    return {"type": "object", "description": description}


TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="list_boards",
        description=(
            "List all boards in a workspace. Returns board id, name, "
            "description, and timestamps."
        ),
        parameters=_schema(
            {"workspaceId": _string("The workspace ID to list boards from")},
            ["workspaceId"],
        ),
    ),
    ToolDefinition(
        name="get_board",
        description=(
            "Get full details of a board including its columns (with types and "
            "config) and groups. Use this to understand the board structure "
            "before creating or updating items."
        ),
        parameters=_schema({"boardId": _string("The board ID")}, ["boardId"]),
    ),
    ToolDefinition(
        name="create_board",
        description=(
            "Create a new board in a workspace. By default it gets Status, "
            "Person, and Date columns plus one group."
        ),
        parameters=_schema(
            {
                "name": _string("Board name"),
                "workspaceId": _string("Workspace ID"),
                "description": _string("Optional board description"),
            },
            ["name", "workspaceId"],
        ),
    ),
    ToolDefinition(
        name="add_column",
        description=(
            "Add a column to a board. Supported types: text, number, status, "
            "person, date, checkbox, link, dropdown, rating, tags, email, phone. "
            "For status columns, provide config.labels as an object like "
            '{"key": {"label": "Display Name", "color": "#hex"}}.'
        ),
        parameters=_schema(
            {
                "boardId": _string("Board ID"),
                "title": _string("Column title"),
                "type": _string(
                    "Column type (text, number, status, person, date, checkbox, "
                    "link, dropdown, rating, tags, email, phone)"
                ),
                "config": _object(
                    "Column configuration (e.g. labels for status columns)"
                ),
            },
            ["boardId", "title", "type"],
        ),
    ),
    ToolDefinition(
        name="add_group",
        description=(
            "Add a group (section) to a board. Groups organize items visually."
        ),
        parameters=_schema(
            {
                "boardId": _string("Board ID"),
                "title": _string("Group title"),
                "color": _string("Optional hex color for the group"),
            },
            ["boardId", "title"],
        ),
    ),
    ToolDefinition(
        name="list_items",
        description="List all items in a board, optionally filtered by group.",
        parameters=_schema(
            {
                "boardId": _string("Board ID"),
                "groupId": _string("Optional group ID to filter items"),
            },
            ["boardId"],
        ),
    ),
    ToolDefinition(
        name="get_item",
        description=(
            "Get full details of an item including its column values, updates "
            "(comments), and sub-items."
        ),
        parameters=_schema({"itemId": _string("Item ID")}, ["itemId"]),
    ),
    ToolDefinition(
        name="create_item",
        description=(
            "Create a new item in a board group. Column values should be an "
            "object mapping column IDs to values. For status columns use the "
            'status key (e.g. "done"), for person columns use the user ID, for '
            "date columns use ISO date strings."
        ),
        parameters=_schema(
            {
                "boardId": _string("Board ID"),
                "groupId": _string("Group ID to add the item to"),
                "name": _string("Item name"),
                "columnValues": _object("Optional column values as {columnId: value}"),
            },
            ["boardId", "groupId", "name"],
        ),
    ),
    ToolDefinition(
        name="update_item",
        description=(
            "Update an existing item. Can change name, move to a different "
            "group, or update column values. Column values are merged with "
            "existing values."
        ),
        parameters=_schema(
            {
                "itemId": _string("Item ID"),
                "name": _string("New item name"),
                "groupId": _string("New group ID to move item to"),
                "columnValues": _object("Column values to update as {columnId: value}"),
            },
            ["itemId"],
        ),
    ),
    ToolDefinition(
        name="delete_item",
        description="Delete an item from a board.",
        parameters=_schema({"itemId": _string("Item ID")}, ["itemId"]),
    ),
    ToolDefinition(
        name="add_item_update",
        description="Add a comment/update to an item.",
        parameters=_schema(
            {"itemId": _string("Item ID"), "body": _string("Comment text")},
            ["itemId", "body"],
        ),
    ),
    ToolDefinition(
        name="list_workspace_members",
        description=(
            "List all members of a workspace. Returns user id, name, email, "
            "avatar, and role. Use this to find user IDs for person columns."
        ),
        parameters=_schema(
            {"workspaceId": _string("Workspace ID")},
            ["workspaceId"],
        ),
    ),
]

TOOL_NAMES = frozenset(t.name for t in TOOL_DEFINITIONS)


def select_tools(
    allowed: Iterable[str], blocked: Iterable[str] = ()
) -> List[ToolDefinition]:
    """Catalog entries in ``allowed`` and not in ``blocked``, catalog order."""
    allowed_set = set(allowed)
    blocked_set = set(blocked or ())
    return [
        t
        for t in TOOL_DEFINITIONS
        if t.name in allowed_set and t.name not in blocked_set
    ]


def to_anthropic_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": {
                "type": "object",
                "properties": t.parameters.get("properties", {}),
                "required": t.parameters.get("required", []),
            },
        }
        for t in tools
    ]


def to_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


class ToolExecutor:
    """Map tool calls onto board gateway operations."""

    def __init__(self, gateway: BoardGateway):
        self.gateway = gateway

    async def execute(
        self, tool_name: str, tool_input: Dict[str, Any], actor_id: str
    ) -> Any:
        """Run one tool call as ``actor_id`` and return the gateway result.

        Raises:
            ToolExecutionError: Unknown tool, bad input, or gateway failure.
        """
        handler = getattr(self, f"_tool_{tool_name}", None)
        if tool_name not in TOOL_NAMES or handler is None:
            raise ToolExecutionError(f"Unknown tool: {tool_name}", tool_name)

        logger.debug("Executing tool", tool=tool_name, actor_id=actor_id)
        try:
            return await handler(tool_input, actor_id)
        except ToolExecutionError:
            raise
        except KeyError as e:
            raise ToolExecutionError(
                f"Missing required input {e.args[0]!r} for {tool_name}", tool_name
            ) from e
        except Exception as e:
            raise ToolExecutionError(str(e), tool_name) from e

    async def _tool_list_boards(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.list_boards(args["workspaceId"])

    async def _tool_get_board(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.get_board(args["boardId"])

    async def _tool_create_board(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.create_board(
            workspace_id=args["workspaceId"],
            name=args["name"],
            actor_id=actor_id,
            description=args.get("description"),
        )

    async def _tool_add_column(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.add_column(
            board_id=args["boardId"],
            title=args["title"],
            column_type=args["type"],
            actor_id=actor_id,
            config=args.get("config"),
        )

    async def _tool_add_group(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.add_group(
            board_id=args["boardId"],
            title=args["title"],
            actor_id=actor_id,
            color=args.get("color"),
        )

    async def _tool_list_items(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.list_items(args["boardId"], args.get("groupId"))

    async def _tool_get_item(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.get_item(args["itemId"])

    async def _tool_create_item(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.create_item(
            board_id=args["boardId"],
            group_id=args["groupId"],
            name=args["name"],
            actor_id=actor_id,
            column_values=args.get("columnValues"),
        )

    async def _tool_update_item(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.update_item(
            item_id=args["itemId"],
            actor_id=actor_id,
            name=args.get("name"),
            group_id=args.get("groupId"),
            column_values=args.get("columnValues"),
        )

    async def _tool_delete_item(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.delete_item(args["itemId"], actor_id)

    async def _tool_add_item_update(self, args: Dict[str, Any], actor_id: str) -> Any:
        return await self.gateway.add_item_update(
            args["itemId"], args["body"], actor_id
        )

    async def _tool_list_workspace_members(
        self, args: Dict[str, Any], actor_id: str
    ) -> Any:
        return await self.gateway.list_workspace_members(args["workspaceId"])
