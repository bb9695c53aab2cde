"""Tests for agent guardrails."""

from forge_engine.agents.guardrails import (
    ACTION_LIMIT_MESSAGE,
    BOARD_DENIED_MESSAGE,
    allowed_tools,
    check_tool_call,
)
from forge_engine.ai.types import ToolCall
from forge_engine.storage.models import Guardrails


def call(name: str = "get_board", **tool_input) -> ToolCall:
    return ToolCall(id="call_1", name=name, input=tool_input)


class TestCheckToolCall:
    """Tests for check_tool_call."""

    def test_allows_within_budget(self) -> None:
        assert check_tool_call(Guardrails(max_actions_per_run=2), call(), 1) is None

    def test_action_limit(self) -> None:
        denial = check_tool_call(Guardrails(max_actions_per_run=2), call(), 2)
        assert denial.reason == "action_limit"
        assert denial.message == ACTION_LIMIT_MESSAGE

    def test_zero_budget_denies_everything(self) -> None:
        denial = check_tool_call(Guardrails(max_actions_per_run=0), call(), 0)
        assert denial.reason == "action_limit"

    def test_board_not_allowed(self) -> None:
        guardrails = Guardrails(allowed_board_ids=["board_1"])
        denial = check_tool_call(guardrails, call(boardId="board_2"), 0)
        assert denial.reason == "board_not_allowed"
        assert denial.message == BOARD_DENIED_MESSAGE

    def test_allowed_board(self) -> None:
        guardrails = Guardrails(allowed_board_ids=["board_1"])
        assert check_tool_call(guardrails, call(boardId="board_1"), 0) is None

    def test_board_check_skipped_without_board_id(self) -> None:
        guardrails = Guardrails(allowed_board_ids=["board_1"])
        assert check_tool_call(guardrails, call("get_item", itemId="i"), 0) is None

    def test_empty_allow_list_allows_all_boards(self) -> None:
        guardrails = Guardrails(allowed_board_ids=[])
        assert check_tool_call(guardrails, call(boardId="anything"), 0) is None

    def test_action_limit_checked_before_board(self) -> None:
        guardrails = Guardrails(max_actions_per_run=1, allowed_board_ids=["board_1"])
        denial = check_tool_call(guardrails, call(boardId="board_2"), 1)
        assert denial.reason == "action_limit"

    def test_tool_not_offered(self) -> None:
        denial = check_tool_call(
            Guardrails(), call("delete_item", itemId="i"), 0, offered_tools={"get_board"}
        )
        assert denial.reason == "tool_not_allowed"
        assert "delete_item" in denial.message


class TestAllowedTools:
    def test_blocked_tools_removed(self, make_agent) -> None:
        agent = make_agent(
            tools=["get_board", "delete_item", "update_item"],
            guardrails={"blockedTools": ["delete_item"]},
        )
        assert [t.name for t in allowed_tools(agent)] == ["get_board", "update_item"]

    def test_unknown_tool_names_ignored(self, make_agent) -> None:
        agent = make_agent(tools=["get_board", "launch_rocket"])
        assert [t.name for t in allowed_tools(agent)] == ["get_board"]
