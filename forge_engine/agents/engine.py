"""Agent invocation: event, manual and schedule triggers."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from ..events.types import ColumnValueChanged, DomainEvent, ItemUpdated
from ..exceptions import NotFoundError
from ..storage.facade import Storage
from ..storage.models import (
    AgentModel,
    AgentRunModel,
    AgentTrigger,
    AgentTriggerType,
    RunStatus,
)
from ..utils.constants import MAX_EVENT_VALUE_LENGTH
from .runner import AgentRunner

logger = structlog.get_logger()


def _short(value: Any) -> str:
    text = str(value)
    if len(text) > MAX_EVENT_VALUE_LENGTH:
        return text[: MAX_EVENT_VALUE_LENGTH - 3] + "..."
    return text


def build_event_prompt(event: DomainEvent) -> str:
    """Describe an event to an agent in natural language."""
    prompt = (
        f"An event occurred: {event.type} on board {event.board_id}, "
        f"item {event.item_id}."
    )
    if isinstance(event, ColumnValueChanged):
        prompt += (
            f" Column {event.column_id} changed from {_short(event.old_value)} "
            f"to {_short(event.new_value)}."
        )
    elif isinstance(event, ItemUpdated):
        prompt += (
            f" Field {event.field} changed from {_short(event.old_value)} "
            f"to {_short(event.new_value)}."
        )
    return prompt + " Take appropriate action based on your role."


def match_event_trigger(
    agent: AgentModel, event: DomainEvent
) -> Optional[AgentTrigger]:
    """First event trigger of ``agent`` whose config accepts ``event``."""
    for trigger in agent.triggers:
        if trigger.type != AgentTriggerType.EVENT:
            continue
        config = trigger.config
        if config.get("eventType") and config["eventType"] != event.type:
            continue
        if config.get("boardId") and config["boardId"] != event.board_id:
            continue
        if config.get("columnId"):
            if not isinstance(event, ColumnValueChanged):
                continue
            if config["columnId"] != event.column_id:
                continue
        return trigger
    return None


class AgentEngine:
    """Create and run agent runs for every kind of trigger.

    Acts as the trigger source of the agent ``TriggerRegistry``.
    """

    domain = "agent"

    def __init__(self, storage: Storage, runner: AgentRunner):
        self.storage = storage
        self.runner = runner
        self._tasks: Dict[str, asyncio.Task] = {}
        self._queued: Dict[str, AgentRunModel] = {}

    @property
    def active_runs(self) -> List[str]:
        return list(self._tasks)

    async def load(self, entity_id: str) -> Optional[AgentModel]:
        return await self.storage.agents.get_agent(entity_id)

    async def list_active(self) -> Sequence[AgentModel]:
        return await self.storage.agents.list_active()

    def wants_events(self, entity: AgentModel) -> bool:
        return entity.has_event_triggers

    def schedules(self, entity: AgentModel) -> List[str]:
        return [
            str(t.config["cron"])
            for t in entity.triggers
            if t.type == AgentTriggerType.SCHEDULE and t.config.get("cron")
        ]

    async def handle_event(self, entity_id: str, event: DomainEvent) -> None:
        try:
            agent = await self.load(entity_id)
            if agent is None or not agent.is_active:
                return
            if match_event_trigger(agent, event) is None:
                return

            logger.info(
                "Agent triggered by event",
                agent_id=entity_id,
                event_type=event.type,
                event_id=event.event_id,
            )
            await self.run_agent(
                agent, "event", build_event_prompt(event), event.actor_id
            )
        except Exception:
            logger.exception(
                "Error handling event for agent",
                agent_id=entity_id,
                event_type=event.type,
                event_id=event.event_id,
            )

    async def handle_schedule(self, entity_id: str, cron_expression: str) -> None:
        try:
            agent = await self.load(entity_id)
            if agent is None or not agent.is_active:
                return
            if cron_expression not in self.schedules(agent):
                return

            logger.info("Agent triggered by schedule", agent_id=entity_id, cron=cron_expression)
            await self.run_agent(
                agent, "schedule", None, agent.created_by_id or "schedule"
            )
        except Exception:
            logger.exception("Error running scheduled agent", agent_id=entity_id)

    async def run_agent(
        self,
        agent: AgentModel,
        triggered_by: str,
        prompt: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> AgentRunModel:
        """Create a run and drive it to completion in the current task."""
        run = await self.storage.agent_runs.create_run(agent.id, triggered_by)
        return await self.runner.run(agent, run, prompt, actor_id or triggered_by)

    async def start_manual_run(
        self,
        agent_id: str,
        prompt: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Tuple[str, RunStatus]:
        """Queue a manual run and return immediately.

        Raises:
            NotFoundError: If the agent does not exist.
        """
        agent = await self.load(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)

        run = await self.storage.agent_runs.create_run(agent.id, "manual")
        task = asyncio.create_task(
            self.runner.run(agent, run, prompt, user_id or "manual"),
            name=f"agent-run-{run.id}",
        )
        self._tasks[run.id] = task
        self._queued[run.id] = run
        task.add_done_callback(lambda _: self._forget(run))

        logger.info("Manual agent run queued", agent_id=agent_id, run_id=run.id)
        return run.id, RunStatus.QUEUED

    async def wait_for_run(self, run_id: str) -> Optional[AgentRunModel]:
        """Wait for a background run started by ``start_manual_run``."""
        task = self._tasks.get(run_id)
        if task is None:
            return await self.storage.agent_runs.get_run(run_id)
        return await task

    async def cancel_run(self, run_id: str) -> bool:
        """Cancel a background run. Returns False if it is not running."""
        task = self._tasks.get(run_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await self._settle(run_id)
        logger.info("Agent run cancelled", run_id=run_id)
        return True

    async def shutdown(self) -> None:
        """Cancel every background run and wait for them to persist."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for run_id in list(self._queued):
            await self._settle(run_id)
        logger.info("Agent engine stopped", cancelled_runs=len(tasks))

    def _forget(self, run: AgentRunModel) -> None:
        self._tasks.pop(run.id, None)
        # A run still queued here never reached the runner; _settle persists it.
        if run.status != RunStatus.QUEUED:
            self._queued.pop(run.id, None)

    async def _settle(self, run_id: str) -> None:
        """Persist a run whose task was cancelled before the runner started."""
        run = self._queued.pop(run_id, None)
        if run is not None:
            await self.runner.cancel_queued(run)
