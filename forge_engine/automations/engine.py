"""Automation execution: event and schedule handling, logging, run counts."""

import uuid
from typing import Any, Dict, List, Optional, Sequence

import structlog

from ..events.types import DomainEvent
from ..storage.facade import Storage
from ..storage.models import AutomationLogModel, AutomationModel, AutomationTriggerType
from .actions import ActionExecutor
from .conditions import evaluate_conditions
from .matching import build_trigger_data, event_column_values, match_trigger

logger = structlog.get_logger()

SYSTEM_ACTOR_ID = "system"


class AutomationEngine:
    """Run automations in response to domain events and cron schedules.

    Acts as the trigger source of the automation ``TriggerRegistry``. Every
    handler re-reads the automation at delivery time.
    """

    domain = "automation"

    def __init__(self, storage: Storage, executor: ActionExecutor):
        self.storage = storage
        self.executor = executor

    async def load(self, entity_id: str) -> Optional[AutomationModel]:
        return await self.storage.automations.get_automation(entity_id)

    async def list_active(self) -> Sequence[AutomationModel]:
        return await self.storage.automations.list_active()

    def wants_events(self, entity: AutomationModel) -> bool:
        # Routing by board and trigger type happens in handle_event
        return True

    def schedules(self, entity: AutomationModel) -> List[str]:
        cron = entity.trigger.config.get("cron")
        if entity.trigger.type == AutomationTriggerType.RECURRING and cron:
            return [str(cron)]
        return []

    async def handle_event(self, entity_id: str, event: DomainEvent) -> None:
        try:
            automation = await self.load(entity_id)
            if automation is None or not automation.is_active:
                return
            if automation.board_id != event.board_id:
                return
            if not match_trigger(automation.trigger, event):
                return

            logger.info(
                "Automation triggered",
                automation_id=entity_id,
                event_type=event.type,
                event_id=event.event_id,
            )
            await self.execute(
                automation,
                build_trigger_data(event),
                event_column_values(event),
                event.actor_id,
            )
        except Exception:
            logger.exception(
                "Error handling event for automation",
                automation_id=entity_id,
                event_type=event.type,
                event_id=event.event_id,
            )

    async def handle_schedule(self, entity_id: str, cron_expression: str) -> None:
        try:
            automation = await self.load(entity_id)
            if automation is None or not automation.is_active:
                return
            if automation.trigger.type != AutomationTriggerType.RECURRING:
                return

            logger.info(
                "Recurring automation fired",
                automation_id=entity_id,
                cron=cron_expression,
            )
            await self.execute(
                automation,
                {"eventType": "recurring", "boardId": automation.board_id},
                {},
                automation.created_by_id or SYSTEM_ACTOR_ID,
            )
        except Exception:
            logger.exception(
                "Error running scheduled automation", automation_id=entity_id
            )

    async def execute(
        self,
        automation: AutomationModel,
        trigger_data: Dict[str, Any],
        column_values: Dict[str, Any],
        actor_id: str,
    ) -> Optional[AutomationLogModel]:
        """Evaluate conditions, run actions, and record the execution.

        Returns None without logging when conditions do not hold. Otherwise
        the log entry is appended and the run count bumped, win or lose.
        """
        if automation.conditions and not evaluate_conditions(
            automation.conditions, column_values
        ):
            logger.debug("Automation conditions not met", automation_id=automation.id)
            return None

        result = await self.executor.execute_all(
            automation.actions, trigger_data, actor_id
        )

        log = AutomationLogModel(
            id=str(uuid.uuid4()),
            automation_id=automation.id,
            trigger_data=trigger_data,
            actions_executed=result.outcomes,
            success=result.success,
            error=result.error,
        )
        try:
            await self.storage.automation_logs.append(log)
        finally:
            await self.storage.automations.record_run(automation.id)

        logger.info(
            "Automation executed",
            automation_id=automation.id,
            success=result.success,
            actions=len(result.outcomes),
            error=result.error,
        )
        return log
