"""Tests for the agent run loop."""

import asyncio
import json

import pytest
from conftest import ScriptedProvider, end_turn, tool_turn

from forge_engine.agents.guardrails import BOARD_DENIED_MESSAGE
from forge_engine.agents.runner import AgentRunner
from forge_engine.ai.registry import ProviderRegistry
from forge_engine.ai.tools import ToolExecutor
from forge_engine.ai.types import ChatStream, ToolCall
from forge_engine.exceptions import ProviderStreamError
from forge_engine.storage.models import RunStatus
from forge_engine.utils.constants import DEFAULT_AGENT_PROMPT


class TrackedStream(ChatStream):
    """Stream that remembers whether it was closed."""

    closed = False

    async def aclose(self) -> None:
        self.closed = True
        await super().aclose()


class FailingProvider(ScriptedProvider):
    """Streams some text, then fails mid-turn."""

    def stream_chat(self, model, system_prompt, messages, tools, max_tokens):
        async def events():
            yield "Working on "
            raise ProviderStreamError("connection reset")

        self.stream = TrackedStream(events())
        return self.stream


class HangingProvider(ScriptedProvider):
    """Never finishes its turn."""

    def stream_chat(self, model, system_prompt, messages, tools, max_tokens):
        async def events():
            yield "Thinking"
            await asyncio.sleep(60)
            yield end_turn()[1]

        self.stream = TrackedStream(events())
        return self.stream


def get_board(call_id: str = "call_1", board_id: str = "board_1") -> ToolCall:
    return ToolCall(id=call_id, name="get_board", input={"boardId": board_id})


@pytest.fixture
async def agent_in_storage(storage, make_agent):
    async def factory(**kwargs):
        return await storage.agents.create_agent(make_agent(**kwargs))

    return factory


def make_runner(storage, gateway, provider, **kwargs) -> AgentRunner:
    return AgentRunner(
        storage, ProviderRegistry([provider]), ToolExecutor(gateway), **kwargs
    )


class TestAgentRunner:
    """Tests for AgentRunner."""

    async def test_completes_with_text(self, storage, gateway, agent_in_storage) -> None:
        provider = ScriptedProvider([end_turn("Hello ", "world")])
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, provider).run(
            agent, run, None, "user_1"
        )

        assert result.status == RunStatus.COMPLETED
        assert result.error is None
        assert [(m.role, m.content) for m in result.messages] == [
            ("user", DEFAULT_AGENT_PROMPT),
            ("assistant", "Hello world"),
        ]
        assert provider.calls[0]["system_prompt"] == agent.system_prompt
        assert provider.calls[0]["tools"] == ["get_board", "update_item"]

        stored = await storage.agent_runs.get_run(run.id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.started_at is not None
        assert stored.completed_at is not None
        assert stored.messages[-1].content == "Hello world"

    async def test_tool_round_trip(self, storage, gateway, agent_in_storage) -> None:
        provider = ScriptedProvider(
            [tool_turn([get_board()], "Let me look. "), end_turn("Board is fine.")]
        )
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, provider).run(
            agent, run, "Check the board", "user_1"
        )

        gateway.get_board.assert_awaited_once_with("board_1")
        assert result.status == RunStatus.COMPLETED
        assert result.messages[-1].content == "Let me look. Board is fine."
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].tool == "get_board"
        assert result.tool_calls[0].output == {"id": "board_1", "name": "Roadmap"}

        second_turn = provider.calls[1]["messages"]
        assert [m.role for m in second_turn] == ["user", "assistant", "tool"]
        assistant_blocks = second_turn[1].content
        assert assistant_blocks[0].text == "Let me look. "
        assert assistant_blocks[1].name == "get_board"
        tool_result = second_turn[2].content[0]
        assert tool_result.tool_call_id == "call_1"
        assert json.loads(tool_result.content) == {"id": "board_1", "name": "Roadmap"}
        assert tool_result.is_error is False

    async def test_action_budget_of_one(self, storage, gateway, agent_in_storage) -> None:
        """With maxActionsPerRun=1, the second call is denied and the run ends."""
        provider = ScriptedProvider(
            [tool_turn([get_board("call_1"), get_board("call_2")])]
        )
        agent = await agent_in_storage(guardrails={"maxActionsPerRun": 1})
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = make_runner(storage, gateway, provider)

        result = await runner.run(agent, run, None, "user_1")

        assert result.status == RunStatus.COMPLETED
        assert len(provider.calls) == 1
        assert gateway.get_board.await_count == 1
        assert len(result.tool_calls) == 1
        assert result.tool_calls[0].id == "call_1"

    async def test_budget_holds_across_rounds(
        self, storage, gateway, agent_in_storage
    ) -> None:
        provider = ScriptedProvider(
            [
                tool_turn([get_board("c1")]),
                tool_turn([get_board("c2"), get_board("c3")]),
                end_turn("done"),
            ]
        )
        agent = await agent_in_storage(guardrails={"maxActionsPerRun": 2})
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = make_runner(storage, gateway, provider)

        result = await runner.run(agent, run, None, "user_1")

        assert [tc.id for tc in result.tool_calls] == ["c1", "c2"]
        assert gateway.get_board.await_count == 2
        assert len(provider.calls) == 2

    async def test_denied_call_is_fed_back(self, storage, gateway, agent_in_storage) -> None:
        provider = ScriptedProvider(
            [
                tool_turn([get_board("c1"), get_board("c2", "board_9")]),
                end_turn("ok"),
            ]
        )
        agent = await agent_in_storage(
            guardrails={"maxActionsPerRun": 5, "allowedBoardIds": ["board_1"]}
        )
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, provider).run(
            agent, run, None, "user_1"
        )

        assert [tc.id for tc in result.tool_calls] == ["c1"]
        results = provider.calls[1]["messages"][2].content
        assert results[1].is_error is True
        assert results[1].content == BOARD_DENIED_MESSAGE

    async def test_zero_budget_runs_nothing(self, storage, gateway, agent_in_storage) -> None:
        provider = ScriptedProvider([tool_turn([get_board("c1")]), end_turn()])
        agent = await agent_in_storage(guardrails={"maxActionsPerRun": 0})
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = make_runner(storage, gateway, provider)

        result = await runner.run(agent, run, None, "user_1")

        assert result.tool_calls == []
        gateway.get_board.assert_not_awaited()
        assert result.status == RunStatus.COMPLETED
        assert len(provider.calls) == 1

    async def test_blocked_tool_not_offered_or_run(
        self, storage, gateway, agent_in_storage
    ) -> None:
        provider = ScriptedProvider(
            [
                tool_turn([ToolCall(id="c1", name="delete_item", input={"itemId": "i"})]),
                end_turn(),
            ]
        )
        agent = await agent_in_storage(
            tools=["get_board", "delete_item"],
            guardrails={"blockedTools": ["delete_item"]},
        )
        run = await storage.agent_runs.create_run(agent.id, "manual")

        await make_runner(storage, gateway, provider).run(agent, run, None, "user_1")

        assert provider.calls[0]["tools"] == ["get_board"]
        gateway.delete_item.assert_not_awaited()

    async def test_tool_error_is_recorded(self, storage, gateway, agent_in_storage) -> None:
        gateway.get_board.side_effect = RuntimeError("database unavailable")
        provider = ScriptedProvider([tool_turn([get_board()]), end_turn("sorry")])
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, provider).run(
            agent, run, None, "user_1"
        )

        assert result.status == RunStatus.COMPLETED
        assert result.tool_calls[0].is_error is True
        assert result.tool_calls[0].output == "database unavailable"
        assert provider.calls[1]["messages"][2].content[0].is_error is True

    async def test_tool_calls_run_as_actor(self, storage, gateway, agent_in_storage) -> None:
        call = ToolCall(id="c1", name="update_item", input={"itemId": "item_1", "name": "x"})
        provider = ScriptedProvider([tool_turn([call]), end_turn()])
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")

        await make_runner(storage, gateway, provider).run(agent, run, None, "user_7")

        assert gateway.update_item.await_args.kwargs["actor_id"] == "user_7"

    async def test_provider_failure_marks_failed(
        self, storage, gateway, agent_in_storage
    ) -> None:
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, FailingProvider()).run(
            agent, run, None, "user_1"
        )

        assert result.status == RunStatus.FAILED
        assert result.error == "connection reset"
        assert result.messages[-1].content == "Working on "
        stored = await storage.agent_runs.get_run(run.id)
        assert stored.status == RunStatus.FAILED

    async def test_no_provider_marks_failed(self, storage, gateway, agent_in_storage) -> None:
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = AgentRunner(storage, ProviderRegistry([]), ToolExecutor(gateway))

        result = await runner.run(agent, run, None, "user_1")

        assert result.status == RunStatus.FAILED
        assert "No AI providers configured" in result.error

    async def test_timeout_marks_cancelled(self, storage, gateway, agent_in_storage) -> None:
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = make_runner(storage, gateway, HangingProvider(), run_timeout=0.05)

        result = await runner.run(agent, run, None, "user_1")

        assert result.status == RunStatus.CANCELLED
        assert result.error == "Run timed out after 0.05 seconds"

    async def test_interrupted_streams_are_closed(
        self, storage, gateway, agent_in_storage
    ) -> None:
        agent = await agent_in_storage()
        hanging = HangingProvider()
        failing = FailingProvider()

        for provider in (hanging, failing):
            run = await storage.agent_runs.create_run(agent.id, "manual")
            runner = make_runner(storage, gateway, provider, run_timeout=0.05)
            await runner.run(agent, run, None, "user_1")

        assert hanging.stream.closed
        assert failing.stream.closed
        assert result.messages[-1].content == "Thinking"

    async def test_round_cap(self, storage, gateway, agent_in_storage) -> None:
        provider = ScriptedProvider([tool_turn([get_board()])])
        agent = await agent_in_storage(guardrails={"maxActionsPerRun": 100})
        run = await storage.agent_runs.create_run(agent.id, "manual")

        result = await make_runner(storage, gateway, provider, max_rounds=3).run(
            agent, run, None, "user_1"
        )

        assert result.status == RunStatus.COMPLETED
        assert len(provider.calls) == 3
        assert len(result.tool_calls) == 3

    async def test_cancellation_persists_and_reraises(
        self, storage, gateway, agent_in_storage
    ) -> None:
        agent = await agent_in_storage()
        run = await storage.agent_runs.create_run(agent.id, "manual")
        runner = make_runner(storage, gateway, HangingProvider())

        task = asyncio.create_task(runner.run(agent, run, None, "user_1"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await storage.agent_runs.get_run(run.id)
        assert stored.status == RunStatus.CANCELLED
        assert stored.error == "Run cancelled"
