"""Unified storage interface.

Provides simple API for the rest of the application.
"""

from typing import Any, Dict

import structlog

from ..utils.constants import DEFAULT_AGENT_MAX_ACTIONS
from .database import DatabaseManager
from .repositories import (
    AgentRepository,
    AgentRunRepository,
    AutomationLogRepository,
    AutomationRepository,
)

logger = structlog.get_logger()


class Storage:
    """Main storage interface."""

    def __init__(
        self,
        database_url: str,
        default_max_actions: int = DEFAULT_AGENT_MAX_ACTIONS,
    ):
        """Initialize storage with database URL."""
        self.db_manager = DatabaseManager(database_url)
        self.automations = AutomationRepository(self.db_manager)
        self.automation_logs = AutomationLogRepository(self.db_manager)
        self.agents = AgentRepository(self.db_manager, default_max_actions)
        self.agent_runs = AgentRunRepository(self.db_manager)

    async def initialize(self):
        """Initialize storage system."""
        logger.info("Initializing storage system")
        await self.db_manager.initialize()
        logger.info("Storage system initialized")

    async def close(self):
        """Close storage connections."""
        logger.info("Closing storage system")
        await self.db_manager.close()

    async def health_check(self) -> bool:
        """Check storage system health."""
        return await self.db_manager.health_check()

    async def get_automation_summary(self, automation_id: str) -> Dict[str, Any]:
        """Get an automation together with its recent execution logs."""
        automation = await self.automations.get_automation(automation_id)
        if not automation:
            return {}

        logs = await self.automation_logs.list_for_automation(automation_id, limit=10)
        return {
            "automation": automation.to_dict(),
            "recentLogs": [log.to_dict() for log in logs],
        }

    async def get_agent_summary(self, agent_id: str) -> Dict[str, Any]:
        """Get an agent together with its recent runs."""
        agent = await self.agents.get_agent(agent_id)
        if not agent:
            return {}

        runs = await self.agent_runs.list_for_agent(agent_id, limit=10)
        return {
            "agent": agent.to_dict(),
            "recentRuns": [
                {
                    "id": run.id,
                    "status": run.status.value,
                    "triggeredBy": run.triggered_by,
                    "error": run.error,
                    "toolCalls": len(run.tool_calls),
                }
                for run in runs
            ],
        }
