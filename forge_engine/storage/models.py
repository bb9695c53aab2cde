"""Data models for storage.

Using dataclasses for simplicity and type safety. The JSON specs stored
with automations and agents (triggers, conditions, actions, guardrails) are
decoded here, at the storage boundary, into typed values with enumerated
legal variants. Unknown operator and action names are kept verbatim so the
evaluator and executor can decide what to do with them.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import aiosqlite
import structlog

logger = structlog.get_logger()


def _parse_datetime(value: Any) -> Any:
    """Parse datetime values from SQLite rows.

    With sqlite3 converters enabled, values may already be datetime instances.
    Without converters, values may be ISO strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _load_json(value: Any, default: Any) -> Any:
    """Decode a JSON column, tolerating already-decoded values."""
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def _enum_or_none(enum_cls: type, value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return None


class EntityStatus(str, Enum):
    """Lifecycle status shared by automations and agents."""

    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class AutomationTriggerType(str, Enum):
    STATUS_CHANGE = "status_change"
    COLUMN_CHANGE = "column_change"
    ITEM_CREATED = "item_created"
    ITEM_DELETED = "item_deleted"
    DATE_ARRIVED = "date_arrived"
    RECURRING = "recurring"
    WEBHOOK = "webhook"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class ActionType(str, Enum):
    CHANGE_COLUMN = "change_column"
    CREATE_ITEM = "create_item"
    MOVE_ITEM = "move_item"
    NOTIFY = "notify"
    SEND_EMAIL = "send_email"
    WEBHOOK = "webhook"
    AI_STEP = "ai_step"


class AgentTriggerType(str, Enum):
    SCHEDULE = "schedule"
    EVENT = "event"
    MANUAL = "manual"


class RunStatus(str, Enum):
    """Agent run states. ``queued`` is transient bookkeeping."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AutomationTrigger:
    """Trigger spec: ``type`` is None when the stored name is unknown."""

    type: Optional[AutomationTriggerType]
    config: Dict[str, Any] = field(default_factory=dict)
    raw_type: str = ""

    def __post_init__(self) -> None:
        if not self.raw_type and self.type is not None:
            self.raw_type = self.type.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationTrigger":
        raw_type = str(data.get("type", ""))
        trigger_type = _enum_or_none(AutomationTriggerType, raw_type)
        if trigger_type is None:
            logger.warning("Unknown automation trigger type", trigger_type=raw_type)
        return cls(
            type=trigger_type,
            config=dict(data.get("config") or {}),
            raw_type=raw_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.raw_type, "config": self.config}


@dataclass
class Condition:
    """One ANDed condition. ``operator`` is None for unknown operators."""

    column_id: str
    operator: Optional[ConditionOperator]
    value: Any = None
    raw_operator: str = ""

    def __post_init__(self) -> None:
        if not self.raw_operator and self.operator is not None:
            self.raw_operator = self.operator.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        raw_operator = str(data.get("operator", ""))
        operator = _enum_or_none(ConditionOperator, raw_operator)
        if operator is None:
            logger.warning(
                "Unknown condition operator, condition will always pass",
                operator=raw_operator,
                column_id=data.get("columnId"),
            )
        return cls(
            column_id=str(data.get("columnId", "")),
            operator=operator,
            value=data.get("value"),
            raw_operator=raw_operator,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnId": self.column_id,
            "operator": self.raw_operator,
            "value": self.value,
        }


@dataclass
class AutomationAction:
    """One action spec. ``type`` is None for unknown action names."""

    type: Optional[ActionType]
    config: Dict[str, Any] = field(default_factory=dict)
    raw_type: str = ""

    def __post_init__(self) -> None:
        if not self.raw_type and self.type is not None:
            self.raw_type = self.type.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationAction":
        raw_type = str(data.get("type", ""))
        return cls(
            type=_enum_or_none(ActionType, raw_type),
            config=dict(data.get("config") or {}),
            raw_type=raw_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.raw_type, "config": self.config}


@dataclass
class AutomationModel:
    """Automation data model."""

    id: str
    board_id: str
    name: str
    trigger: AutomationTrigger
    actions: List[AutomationAction]
    conditions: List[Condition] = field(default_factory=list)
    description: Optional[str] = None
    status: EntityStatus = EntityStatus.ACTIVE
    run_count: int = 0
    last_run_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "boardId": self.board_id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger.to_dict(),
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "status": self.status.value,
            "runCount": self.run_count,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "createdById": self.created_by_id,
        }

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "AutomationModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            id=data["id"],
            board_id=data["board_id"],
            name=data["name"],
            description=data.get("description"),
            trigger=AutomationTrigger.from_dict(_load_json(data["trigger"], {})),
            conditions=[
                Condition.from_dict(c) for c in _load_json(data.get("conditions"), [])
            ],
            actions=[
                AutomationAction.from_dict(a) for a in _load_json(data["actions"], [])
            ],
            status=EntityStatus(data["status"]),
            run_count=data.get("run_count") or 0,
            last_run_at=_parse_datetime(data.get("last_run_at")),
            created_by_id=data.get("created_by_id"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass
class ActionOutcome:
    """Result of one attempted automation action."""

    action: str
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"action": self.action, "result": self.result}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class AutomationLogModel:
    """Append-only record of one triggered automation execution."""

    id: str
    automation_id: str
    trigger_data: Dict[str, Any]
    actions_executed: List[ActionOutcome]
    success: bool
    error: Optional[str] = None
    executed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "automationId": self.automation_id,
            "triggerData": self.trigger_data,
            "actionsExecuted": [o.to_dict() for o in self.actions_executed],
            "success": self.success,
            "error": self.error,
            "executedAt": self.executed_at.isoformat() if self.executed_at else None,
        }

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "AutomationLogModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            id=data["id"],
            automation_id=data["automation_id"],
            trigger_data=_load_json(data.get("trigger_data"), {}),
            actions_executed=[
                ActionOutcome(
                    action=o.get("action", ""),
                    result=o.get("result"),
                    error=o.get("error"),
                )
                for o in _load_json(data.get("actions_executed"), [])
            ],
            success=bool(data["success"]),
            error=data.get("error"),
            executed_at=_parse_datetime(data.get("executed_at")),
        )


@dataclass
class AgentTrigger:
    """Agent trigger spec. ``type`` is None for unknown trigger names."""

    type: Optional[AgentTriggerType]
    config: Dict[str, Any] = field(default_factory=dict)
    raw_type: str = ""

    def __post_init__(self) -> None:
        if not self.raw_type and self.type is not None:
            self.raw_type = self.type.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentTrigger":
        raw_type = str(data.get("type", ""))
        trigger_type = _enum_or_none(AgentTriggerType, raw_type)
        if trigger_type is None:
            logger.warning("Unknown agent trigger type", trigger_type=raw_type)
        return cls(
            type=trigger_type,
            config=dict(data.get("config") or {}),
            raw_type=raw_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.raw_type, "config": self.config}


@dataclass
class Guardrails:
    """Hard limits on what one agent run may execute."""

    require_approval: bool = True
    max_actions_per_run: int = 10
    allowed_board_ids: Optional[List[str]] = None
    blocked_tools: Optional[List[str]] = None

    @classmethod
    def from_dict(
        cls, data: Optional[Dict[str, Any]], default_max_actions: int = 10
    ) -> "Guardrails":
        if not data:
            return cls(max_actions_per_run=default_max_actions)
        max_actions = data.get("maxActionsPerRun")
        return cls(
            require_approval=bool(data.get("requireApproval", True)),
            max_actions_per_run=(
                int(max_actions) if max_actions is not None else default_max_actions
            ),
            allowed_board_ids=data.get("allowedBoardIds"),
            blocked_tools=data.get("blockedTools"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "requireApproval": self.require_approval,
            "maxActionsPerRun": self.max_actions_per_run,
        }
        if self.allowed_board_ids is not None:
            data["allowedBoardIds"] = self.allowed_board_ids
        if self.blocked_tools is not None:
            data["blockedTools"] = self.blocked_tools
        return data


@dataclass
class AgentModel:
    """Agent data model."""

    id: str
    workspace_id: str
    name: str
    system_prompt: str
    tools: List[str] = field(default_factory=list)
    triggers: List[AgentTrigger] = field(default_factory=list)
    guardrails: Guardrails = field(default_factory=Guardrails)
    description: Optional[str] = None
    status: EntityStatus = EntityStatus.ACTIVE
    created_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE

    @property
    def has_event_triggers(self) -> bool:
        return any(t.type == AgentTriggerType.EVENT for t in self.triggers)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "workspaceId": self.workspace_id,
            "name": self.name,
            "description": self.description,
            "systemPrompt": self.system_prompt,
            "tools": self.tools,
            "triggers": [t.to_dict() for t in self.triggers],
            "guardrails": self.guardrails.to_dict(),
            "status": self.status.value,
            "createdById": self.created_by_id,
        }

    @classmethod
    def from_row(
        cls, row: aiosqlite.Row, default_max_actions: int = 10
    ) -> "AgentModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            id=data["id"],
            workspace_id=data["workspace_id"],
            name=data["name"],
            description=data.get("description"),
            system_prompt=data["system_prompt"],
            tools=list(_load_json(data.get("tools"), [])),
            triggers=[
                AgentTrigger.from_dict(t) for t in _load_json(data.get("triggers"), [])
            ],
            guardrails=Guardrails.from_dict(
                _load_json(data.get("guardrails"), None), default_max_actions
            ),
            status=EntityStatus(data["status"]),
            created_by_id=data.get("created_by_id"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass
class AgentMessage:
    """One transcript entry of an agent run."""

    role: str
    content: str
    timestamp: str


@dataclass
class ToolCallRecord:
    """One executed tool call of an agent run."""

    id: str
    tool: str
    input: Dict[str, Any]
    output: Any
    timestamp: str
    is_error: bool = False


@dataclass
class AgentRunModel:
    """Agent run data model."""

    id: str
    agent_id: str
    triggered_by: str
    status: RunStatus = RunStatus.QUEUED
    messages: List[AgentMessage] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            RunStatus.COMPLETED,
            RunStatus.FAILED,
            RunStatus.CANCELLED,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        for key in ["created_at", "started_at", "completed_at"]:
            if data[key]:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "AgentRunModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            id=data["id"],
            agent_id=data["agent_id"],
            triggered_by=data["triggered_by"],
            status=RunStatus(data["status"]),
            messages=[
                AgentMessage(**m) for m in _load_json(data.get("messages"), [])
            ],
            tool_calls=[
                ToolCallRecord(**tc) for tc in _load_json(data.get("tool_calls"), [])
            ],
            error=data.get("error"),
            created_at=_parse_datetime(data.get("created_at")),
            started_at=_parse_datetime(data.get("started_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
        )
