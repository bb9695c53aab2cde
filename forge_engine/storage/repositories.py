"""Data access layer using repository pattern.

Features:
- Clean data access API
- JSON column encoding at the storage boundary
- Error handling
"""

import json
import uuid
from dataclasses import asdict
from datetime import UTC, datetime
from typing import List, Optional

import structlog

from ..utils.constants import DEFAULT_AGENT_MAX_ACTIONS
from .database import DatabaseManager
from .models import (
    AgentModel,
    AgentRunModel,
    AutomationLogModel,
    AutomationModel,
    EntityStatus,
    RunStatus,
)

logger = structlog.get_logger()


class AutomationRepository:
    """Automation data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def get_automation(self, automation_id: str) -> Optional[AutomationModel]:
        """Get automation by ID."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM automations WHERE id = ?", (automation_id,)
            )
            row = await cursor.fetchone()
            return AutomationModel.from_row(row) if row else None

    async def list_active(self) -> List[AutomationModel]:
        """Get all active automations."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM automations WHERE status = ? ORDER BY created_at",
                (EntityStatus.ACTIVE.value,),
            )
            rows = await cursor.fetchall()
            return [AutomationModel.from_row(row) for row in rows]

    async def create_automation(self, automation: AutomationModel) -> AutomationModel:
        """Create new automation."""
        now = datetime.now(UTC)
        automation.created_at = automation.created_at or now
        automation.updated_at = automation.updated_at or now
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO automations
                (id, board_id, name, description, trigger, conditions, actions,
                 status, run_count, last_run_at, created_by_id,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    automation.id,
                    automation.board_id,
                    automation.name,
                    automation.description,
                    json.dumps(automation.trigger.to_dict()),
                    json.dumps([c.to_dict() for c in automation.conditions]),
                    json.dumps([a.to_dict() for a in automation.actions]),
                    automation.status.value,
                    automation.run_count,
                    automation.last_run_at,
                    automation.created_by_id,
                    automation.created_at,
                    automation.updated_at,
                ),
            )
            await conn.commit()

        logger.info(
            "Created automation",
            automation_id=automation.id,
            board_id=automation.board_id,
            trigger_type=automation.trigger.raw_type,
        )
        return automation

    async def set_status(self, automation_id: str, status: EntityStatus) -> None:
        """Change automation lifecycle status."""
        async with self.db.get_connection() as conn:
            await conn.execute(
                "UPDATE automations SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, datetime.now(UTC), automation_id),
            )
            await conn.commit()

    async def record_run(
        self, automation_id: str, run_at: Optional[datetime] = None
    ) -> None:
        """Increment run count and stamp the last run time."""
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                UPDATE automations
                SET run_count = run_count + 1, last_run_at = ?
                WHERE id = ?
            """,
                (run_at or datetime.now(UTC), automation_id),
            )
            await conn.commit()


class AutomationLogRepository:
    """Automation execution log data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def append(self, log: AutomationLogModel) -> AutomationLogModel:
        """Append an execution log entry."""
        log.id = log.id or str(uuid.uuid4())
        log.executed_at = log.executed_at or datetime.now(UTC)
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO automation_logs
                (id, automation_id, trigger_data, actions_executed,
                 success, error, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    log.id,
                    log.automation_id,
                    json.dumps(log.trigger_data, default=str),
                    json.dumps(
                        [o.to_dict() for o in log.actions_executed], default=str
                    ),
                    log.success,
                    log.error,
                    log.executed_at,
                ),
            )
            await conn.commit()
            return log

    async def list_for_automation(
        self, automation_id: str, limit: int = 50
    ) -> List[AutomationLogModel]:
        """Get most recent execution logs for an automation."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM automation_logs
                WHERE automation_id = ?
                ORDER BY executed_at DESC
                LIMIT ?
            """,
                (automation_id, limit),
            )
            rows = await cursor.fetchall()
            return [AutomationLogModel.from_row(row) for row in rows]


class AgentRepository:
    """Agent data access."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        default_max_actions: int = DEFAULT_AGENT_MAX_ACTIONS,
    ):
        """Initialize repository."""
        self.db = db_manager
        self.default_max_actions = default_max_actions

    async def get_agent(self, agent_id: str) -> Optional[AgentModel]:
        """Get agent by ID."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,))
            row = await cursor.fetchone()
            return AgentModel.from_row(row, self.default_max_actions) if row else None

    async def list_active(self) -> List[AgentModel]:
        """Get all active agents."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM agents WHERE status = ? ORDER BY created_at",
                (EntityStatus.ACTIVE.value,),
            )
            rows = await cursor.fetchall()
            return [AgentModel.from_row(row, self.default_max_actions) for row in rows]

    async def create_agent(self, agent: AgentModel) -> AgentModel:
        """Create new agent."""
        now = datetime.now(UTC)
        agent.created_at = agent.created_at or now
        agent.updated_at = agent.updated_at or now
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO agents
                (id, workspace_id, name, description, system_prompt, tools,
                 triggers, guardrails, status, created_by_id,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    agent.id,
                    agent.workspace_id,
                    agent.name,
                    agent.description,
                    agent.system_prompt,
                    json.dumps(agent.tools),
                    json.dumps([t.to_dict() for t in agent.triggers]),
                    json.dumps(agent.guardrails.to_dict()),
                    agent.status.value,
                    agent.created_by_id,
                    agent.created_at,
                    agent.updated_at,
                ),
            )
            await conn.commit()

        logger.info(
            "Created agent",
            agent_id=agent.id,
            workspace_id=agent.workspace_id,
            tools=len(agent.tools),
        )
        return agent

    async def set_status(self, agent_id: str, status: EntityStatus) -> None:
        """Change agent lifecycle status."""
        async with self.db.get_connection() as conn:
            await conn.execute(
                "UPDATE agents SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, datetime.now(UTC), agent_id),
            )
            await conn.commit()


class AgentRunRepository:
    """Agent run data access.

    A run is written exactly twice: once when created in ``queued`` state and
    once when it reaches a terminal state.
    """

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def create_run(self, agent_id: str, triggered_by: str) -> AgentRunModel:
        """Create a queued run."""
        run = AgentRunModel(
            id=str(uuid.uuid4()),
            agent_id=agent_id,
            triggered_by=triggered_by,
            status=RunStatus.QUEUED,
            created_at=datetime.now(UTC),
        )
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO agent_runs
                (id, agent_id, triggered_by, status, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (run.id, run.agent_id, run.triggered_by, run.status.value, run.created_at),
            )
            await conn.commit()

        logger.debug(
            "Created agent run",
            run_id=run.id,
            agent_id=agent_id,
            triggered_by=triggered_by,
        )
        return run

    async def finish_run(self, run: AgentRunModel) -> None:
        """Persist the terminal state of a run."""
        run.completed_at = run.completed_at or datetime.now(UTC)
        async with self.db.get_connection() as conn:
            await conn.execute(
                """
                UPDATE agent_runs
                SET status = ?, messages = ?, tool_calls = ?, error = ?,
                    started_at = ?, completed_at = ?
                WHERE id = ?
            """,
                (
                    run.status.value,
                    json.dumps([asdict(m) for m in run.messages]),
                    json.dumps([asdict(tc) for tc in run.tool_calls], default=str),
                    run.error,
                    run.started_at,
                    run.completed_at,
                    run.id,
                ),
            )
            await conn.commit()

    async def get_run(self, run_id: str) -> Optional[AgentRunModel]:
        """Get run by ID."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM agent_runs WHERE id = ?", (run_id,)
            )
            row = await cursor.fetchone()
            return AgentRunModel.from_row(row) if row else None

    async def list_for_agent(
        self, agent_id: str, limit: int = 50
    ) -> List[AgentRunModel]:
        """Get most recent runs for an agent."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM agent_runs
                WHERE agent_id = ?
                ORDER BY created_at DESC
                LIMIT ?
            """,
                (agent_id, limit),
            )
            rows = await cursor.fetchall()
            return [AgentRunModel.from_row(row) for row in rows]
