"""Tests for agent triggering and manual runs."""

import asyncio

import pytest
from conftest import ScriptedProvider, end_turn

from forge_engine.agents.engine import AgentEngine, build_event_prompt, match_event_trigger
from forge_engine.agents.runner import AgentRunner
from forge_engine.ai.registry import ProviderRegistry
from forge_engine.ai.tools import ToolExecutor
from forge_engine.ai.types import ChatStream
from forge_engine.events.bus import EventBus
from forge_engine.events.types import ColumnValueChanged, ItemCreated, ItemUpdated
from forge_engine.exceptions import NotFoundError
from forge_engine.storage.models import EntityStatus, RunStatus
from forge_engine.triggers.registry import TriggerRegistry

EVENT_TRIGGER = {
    "type": "event",
    "config": {"eventType": "column_value_changed", "boardId": "board_1"},
}


class GatedProvider(ScriptedProvider):
    """Blocks each turn until the test releases it."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    def stream_chat(self, model, system_prompt, messages, tools, max_tokens):
        gate = self.gate

        async def events():
            await gate.wait()
            yield "released"
            yield end_turn()[1]

        return ChatStream(events())


def status_changed(board_id: str = "board_1") -> ColumnValueChanged:
    return ColumnValueChanged(
        board_id=board_id,
        item_id="item_1",
        actor_id="user_1",
        column_id="status",
        old_value="todo",
        new_value="done",
    )


def make_engine(storage, gateway, provider) -> AgentEngine:
    runner = AgentRunner(storage, ProviderRegistry([provider]), ToolExecutor(gateway))
    return AgentEngine(storage, runner)


class TestEventPrompt:
    def test_column_change_prompt(self) -> None:
        assert build_event_prompt(status_changed()) == (
            "An event occurred: column_value_changed on board board_1, item item_1."
            " Column status changed from todo to done."
            " Take appropriate action based on your role."
        )

    def test_item_updated_prompt(self) -> None:
        event = ItemUpdated(
            board_id="b", item_id="i", actor_id="u", field="name", old_value="a", new_value="b"
        )
        assert " Field name changed from a to b." in build_event_prompt(event)

    def test_long_values_are_truncated(self) -> None:
        event = ColumnValueChanged(
            board_id="b", item_id="i", actor_id="u", column_id="notes", new_value="x" * 1000
        )
        prompt = build_event_prompt(event)
        assert "x" * 1000 not in prompt
        assert "..." in prompt


class TestMatchEventTrigger:
    def test_matches_event_and_board(self, make_agent) -> None:
        agent = make_agent(triggers=[EVENT_TRIGGER])
        assert match_event_trigger(agent, status_changed()) is not None
        assert match_event_trigger(agent, status_changed("board_2")) is None

    def test_event_type_mismatch(self, make_agent) -> None:
        agent = make_agent(triggers=[EVENT_TRIGGER])
        event = ItemCreated(board_id="board_1", item_id="i", actor_id="u")
        assert match_event_trigger(agent, event) is None

    def test_column_filter(self, make_agent) -> None:
        agent = make_agent(
            triggers=[{"type": "event", "config": {"columnId": "priority"}}]
        )
        assert match_event_trigger(agent, status_changed()) is None

    def test_manual_trigger_never_matches_events(self, make_agent) -> None:
        agent = make_agent(triggers=[{"type": "manual"}])
        assert match_event_trigger(agent, status_changed()) is None


class TestAgentEngine:
    """Tests for AgentEngine."""

    async def test_event_creates_one_run(self, storage, gateway, make_agent) -> None:
        """One matching event through the bus yields exactly one run."""
        provider = ScriptedProvider([end_turn("Triaged.")])
        engine = make_engine(storage, gateway, provider)
        await storage.agents.create_agent(make_agent(triggers=[EVENT_TRIGGER]))
        bus = EventBus()
        registry = TriggerRegistry(bus, engine)
        await registry.init_listeners()

        bus.emit(status_changed())
        await bus.drain()

        runs = await storage.agent_runs.list_for_agent("agent_1")
        assert len(runs) == 1
        assert runs[0].triggered_by == "event"
        assert runs[0].status == RunStatus.COMPLETED
        assert runs[0].messages[0].content.startswith("An event occurred")

    async def test_non_matching_event_creates_no_run(
        self, storage, gateway, make_agent
    ) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider())
        await storage.agents.create_agent(make_agent(triggers=[EVENT_TRIGGER]))

        await engine.handle_event("agent_1", status_changed("board_2"))

        assert await storage.agent_runs.list_for_agent("agent_1") == []

    async def test_paused_agent_ignores_events(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider())
        await storage.agents.create_agent(make_agent(triggers=[EVENT_TRIGGER]))
        await storage.agents.set_status("agent_1", EntityStatus.PAUSED)

        await engine.handle_event("agent_1", status_changed())

        assert await storage.agent_runs.list_for_agent("agent_1") == []

    async def test_listener_interest(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider())
        manual = make_agent(triggers=[{"type": "manual"}])
        scheduled = make_agent(
            triggers=[{"type": "schedule", "config": {"cron": "0 9 * * *"}}, EVENT_TRIGGER]
        )

        assert engine.wants_events(manual) is False
        assert engine.schedules(manual) == []
        assert engine.wants_events(scheduled) is True
        assert engine.schedules(scheduled) == ["0 9 * * *"]

    async def test_schedule_run(self, storage, gateway, make_agent) -> None:
        provider = ScriptedProvider()
        engine = make_engine(storage, gateway, provider)
        await storage.agents.create_agent(
            make_agent(triggers=[{"type": "schedule", "config": {"cron": "0 9 * * *"}}])
        )

        await engine.handle_schedule("agent_1", "0 9 * * *")

        runs = await storage.agent_runs.list_for_agent("agent_1")
        assert len(runs) == 1
        assert runs[0].triggered_by == "schedule"

    async def test_stale_schedule_is_ignored(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider())
        await storage.agents.create_agent(
            make_agent(triggers=[{"type": "schedule", "config": {"cron": "0 9 * * *"}}])
        )

        await engine.handle_schedule("agent_1", "0 17 * * *")

        assert await storage.agent_runs.list_for_agent("agent_1") == []

    async def test_manual_run_returns_queued(self, storage, gateway, make_agent) -> None:
        provider = GatedProvider()
        engine = make_engine(storage, gateway, provider)
        await storage.agents.create_agent(make_agent())

        run_id, status = await engine.start_manual_run("agent_1", "Do it", "user_1")

        assert status == RunStatus.QUEUED
        assert run_id in engine.active_runs

        provider.gate.set()
        run = await engine.wait_for_run(run_id)

        assert run.status == RunStatus.COMPLETED
        assert run.triggered_by == "manual"
        assert run.messages[0].content == "Do it"
        assert engine.active_runs == []

    async def test_manual_run_unknown_agent(self, storage, gateway) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider())
        with pytest.raises(NotFoundError):
            await engine.start_manual_run("ghost")

    async def test_cancel_run(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, GatedProvider())
        await storage.agents.create_agent(make_agent())
        run_id, _ = await engine.start_manual_run("agent_1")
        await asyncio.sleep(0.01)

        assert await engine.cancel_run(run_id) is True
        assert await engine.cancel_run(run_id) is False

        stored = await storage.agent_runs.get_run(run_id)
        assert stored.status == RunStatus.CANCELLED

    async def test_shutdown_cancels_runs(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, GatedProvider())
        await storage.agents.create_agent(make_agent())
        run_id, _ = await engine.start_manual_run("agent_1")
        await asyncio.sleep(0.01)

        await engine.shutdown()

        assert engine.active_runs == []
        stored = await storage.agent_runs.get_run(run_id)
        assert stored.status == RunStatus.CANCELLED

    async def test_cancel_before_run_starts(self, storage, gateway, make_agent) -> None:
        """A run cancelled while still queued is stored as cancelled."""
        engine = make_engine(storage, gateway, GatedProvider())
        await storage.agents.create_agent(make_agent())
        run_id, status = await engine.start_manual_run("agent_1")

        assert status == RunStatus.QUEUED
        assert await engine.cancel_run(run_id) is True

        stored = await storage.agent_runs.get_run(run_id)
        assert stored.status == RunStatus.CANCELLED
        assert stored.error == "Run cancelled"
        assert stored.completed_at is not None

    async def test_shutdown_before_run_starts(self, storage, gateway, make_agent) -> None:
        engine = make_engine(storage, gateway, GatedProvider())
        await storage.agents.create_agent(make_agent())
        run_id, _ = await engine.start_manual_run("agent_1")

        await engine.shutdown()

        assert engine.active_runs == []
        stored = await storage.agent_runs.get_run(run_id)
        assert stored.status == RunStatus.CANCELLED

    async def test_completed_run_left_alone_by_shutdown(
        self, storage, gateway, make_agent
    ) -> None:
        engine = make_engine(storage, gateway, ScriptedProvider([end_turn("done")]))
        await storage.agents.create_agent(make_agent())
        run_id, _ = await engine.start_manual_run("agent_1")
        await engine.wait_for_run(run_id)

        await engine.shutdown()

        stored = await storage.agent_runs.get_run(run_id)
        assert stored.status == RunStatus.COMPLETED
