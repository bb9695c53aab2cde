"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from unittest.mock import AsyncMock

import pytest

from forge_engine.ai.registry import ProviderRegistry
from forge_engine.ai.types import (
    AIProvider,
    ChatStream,
    Message,
    ProviderModel,
    StreamResult,
    ToolCall,
    ToolDefinition,
)
from forge_engine.gateway import BoardGateway
from forge_engine.storage.facade import Storage
from forge_engine.storage.models import (
    AgentModel,
    AgentTrigger,
    AgentTriggerType,
    AutomationAction,
    AutomationModel,
    AutomationTrigger,
    Condition,
    Guardrails,
)

Turn = Tuple[Sequence[str], StreamResult]


def end_turn(*deltas: str) -> Turn:
    """A scripted turn that streams text and finishes."""
    return list(deltas), StreamResult(tool_calls=[], stop_reason="end_turn")


def tool_turn(calls: List[ToolCall], *deltas: str) -> Turn:
    """A scripted turn that requests tool calls."""
    return list(deltas), StreamResult(tool_calls=calls, stop_reason="tool_use")


class ScriptedProvider(AIProvider):
    """Provider replaying scripted turns; the last turn repeats forever."""

    provider_id = "scripted"
    display_name = "Scripted"

    def __init__(self, turns: Optional[List[Turn]] = None, completion: str = "ok"):
        self.models = [ProviderModel(id="scripted-1", display_name="Scripted", max_tokens=1024)]
        self.turns = turns or [end_turn("done")]
        self.completion = completion
        self.calls: List[Dict[str, Any]] = []
        self.complete_calls: List[Dict[str, Any]] = []

    def stream_chat(
        self,
        model: str,
        system_prompt: str,
        messages: List[Message],
        tools: List[ToolDefinition],
        max_tokens: int,
    ) -> ChatStream:
        index = min(len(self.calls), len(self.turns) - 1)
        self.calls.append(
            {
                "model": model,
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": [t.name for t in tools],
                "max_tokens": max_tokens,
            }
        )
        deltas, result = self.turns[index]

        async def events():
            for delta in deltas:
                yield delta
            yield result

        return ChatStream(events())

    async def complete(
        self,
        model: str,
        messages: List[Message],
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> str:
        self.complete_calls.append(
            {"model": model, "messages": list(messages), "max_tokens": max_tokens}
        )
        return self.completion


@pytest.fixture
def scripted_provider():
    """Provider that ends its turn immediately."""
    return ScriptedProvider()


@pytest.fixture
def provider_registry(scripted_provider):
    """Registry holding only the scripted provider."""
    return ProviderRegistry([scripted_provider])


@pytest.fixture
def gateway():
    """Board gateway double recording every call."""
    mock = AsyncMock(spec=BoardGateway)
    mock.get_board.return_value = {"id": "board_1", "name": "Roadmap"}
    mock.update_item.return_value = {"id": "item_1"}
    mock.create_item.return_value = {"id": "item_new"}
    return mock


@pytest.fixture
async def storage():
    """Initialized storage backed by a temporary SQLite file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        db_path = Path(temp_dir) / "test.db"
        store = Storage(f"sqlite:///{db_path}")
        await store.initialize()
        yield store
        await store.close()


@pytest.fixture
def make_automation():
    """Factory for automation models."""

    def factory(
        automation_id: str = "auto_1",
        board_id: str = "board_1",
        trigger: Optional[Dict[str, Any]] = None,
        actions: Optional[List[Dict[str, Any]]] = None,
        conditions: Optional[List[Dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> AutomationModel:
        return AutomationModel(
            id=automation_id,
            board_id=board_id,
            name=kwargs.pop("name", "Test automation"),
            trigger=AutomationTrigger.from_dict(
                trigger or {"type": "item_created", "config": {}}
            ),
            actions=[
                AutomationAction.from_dict(a)
                for a in (actions or [{"type": "notify", "config": {"message": "hi"}}])
            ],
            conditions=[Condition.from_dict(c) for c in (conditions or [])],
            **kwargs,
        )

    return factory


@pytest.fixture
def make_agent():
    """Factory for agent models."""

    def factory(
        agent_id: str = "agent_1",
        tools: Optional[List[str]] = None,
        triggers: Optional[List[Dict[str, Any]]] = None,
        guardrails: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> AgentModel:
        return AgentModel(
            id=agent_id,
            workspace_id=kwargs.pop("workspace_id", "ws_1"),
            name=kwargs.pop("name", "Triage bot"),
            system_prompt=kwargs.pop("system_prompt", "You triage new items."),
            tools=tools if tools is not None else ["get_board", "update_item"],
            triggers=[
                AgentTrigger.from_dict(t)
                for t in (triggers or [{"type": AgentTriggerType.MANUAL.value}])
            ],
            guardrails=Guardrails.from_dict(guardrails),
            **kwargs,
        )

    return factory
