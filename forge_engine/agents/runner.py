"""Agentic tool-calling loop for one agent run.

Run states: ``queued -> running -> completed | failed | cancelled``.
Partial transcripts and tool logs are persisted on every terminal path.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, List, Optional

import structlog

from ..ai.registry import ProviderRegistry
from ..ai.tools import ToolExecutor
from ..ai.types import (
    ContentBlock,
    Message,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)
from ..exceptions import ToolExecutionError
from ..storage.facade import Storage
from ..storage.models import (
    AgentMessage,
    AgentModel,
    AgentRunModel,
    RunStatus,
    ToolCallRecord,
)
from ..utils.constants import (
    DEFAULT_AGENT_MAX_ROUNDS,
    DEFAULT_AGENT_MAX_TOKENS,
    DEFAULT_AGENT_PROMPT,
    DEFAULT_AGENT_RUN_TIMEOUT_SECONDS,
)
from .guardrails import allowed_tools, check_tool_call

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class _LoopState:
    """Progress shared between the loop and the terminal bookkeeping."""

    assistant_text: str = ""
    executed_actions: int = 0
    rounds: int = 0
    conversation: List[Message] = field(default_factory=list)


class AgentRunner:
    """Drive one agent run against a provider and the tool executor."""

    def __init__(
        self,
        storage: Storage,
        providers: ProviderRegistry,
        tools: ToolExecutor,
        max_tokens: int = DEFAULT_AGENT_MAX_TOKENS,
        max_rounds: int = DEFAULT_AGENT_MAX_ROUNDS,
        run_timeout: float = DEFAULT_AGENT_RUN_TIMEOUT_SECONDS,
    ):
        self.storage = storage
        self.providers = providers
        self.tools = tools
        self.max_tokens = max_tokens
        self.max_rounds = max_rounds
        self.run_timeout = run_timeout

    async def run(
        self,
        agent: AgentModel,
        run: AgentRunModel,
        prompt: Optional[str],
        actor_id: str,
    ) -> AgentRunModel:
        """Execute a queued run to a terminal state and persist it once.

        Cancellation of the calling task marks the run cancelled and is
        re-raised after the run is saved.
        """
        run.status = RunStatus.RUNNING
        run.started_at = datetime.now(UTC)
        state = _LoopState()

        logger.info(
            "Agent run started",
            agent_id=agent.id,
            run_id=run.id,
            triggered_by=run.triggered_by,
            require_approval=agent.guardrails.require_approval,
        )

        try:
            await asyncio.wait_for(
                self._loop(agent, run, state, prompt, actor_id),
                timeout=self.run_timeout,
            )
        except asyncio.TimeoutError:
            self._terminate(
                run,
                state,
                RunStatus.CANCELLED,
                f"Run timed out after {self.run_timeout:g} seconds",
            )
        except asyncio.CancelledError:
            self._terminate(run, state, RunStatus.CANCELLED, "Run cancelled")
            await asyncio.shield(self._persist(run))
            raise
        except Exception as e:
            logger.exception("Agent run failed", agent_id=agent.id, run_id=run.id)
            self._terminate(
                run, state, RunStatus.FAILED, str(e) or type(e).__name__
            )
        else:
            run.messages.append(
                AgentMessage(
                    role="assistant", content=state.assistant_text, timestamp=_now()
                )
            )
            run.status = RunStatus.COMPLETED

        await self._persist(run)

        logger.info(
            "Agent run finished",
            agent_id=agent.id,
            run_id=run.id,
            status=run.status.value,
            rounds=state.rounds,
            tool_calls=len(run.tool_calls),
            error=run.error,
        )
        return run

    async def _loop(
        self,
        agent: AgentModel,
        run: AgentRunModel,
        state: _LoopState,
        prompt: Optional[str],
        actor_id: str,
    ) -> None:
        guardrails = agent.guardrails
        tools = allowed_tools(agent)
        offered = {t.name for t in tools}

        prompt = prompt or DEFAULT_AGENT_PROMPT
        state.conversation.append(Message(role="user", content=prompt))
        run.messages.append(AgentMessage(role="user", content=prompt, timestamp=_now()))

        provider, model = self.providers.resolve()

        while True:
            if state.rounds >= self.max_rounds:
                logger.warning(
                    "Agent run stopped at round cap",
                    run_id=run.id,
                    max_rounds=self.max_rounds,
                )
                return
            state.rounds += 1

            stream = provider.stream_chat(
                model=model,
                system_prompt=agent.system_prompt,
                messages=state.conversation,
                tools=tools,
                max_tokens=self.max_tokens,
            )
            turn_text = ""
            try:
                async for delta in stream:
                    turn_text += delta
                    state.assistant_text += delta
                result = await stream.result()
            finally:
                await stream.aclose()

            if result.stop_reason != "tool_use" or not result.tool_calls:
                return

            blocks: List[ContentBlock] = []
            if turn_text:
                blocks.append(TextBlock(text=turn_text))
            blocks.extend(
                ToolUseBlock(id=call.id, name=call.name, input=call.input)
                for call in result.tool_calls
            )
            state.conversation.append(Message(role="assistant", content=blocks))

            tool_results: List[ContentBlock] = []
            for call in result.tool_calls:
                tool_results.append(
                    await self._handle_call(
                        agent, run, state, call, actor_id, offered
                    )
                )
            state.conversation.append(Message(role="tool", content=tool_results))

            if state.executed_actions >= guardrails.max_actions_per_run:
                logger.info(
                    "Agent action budget exhausted",
                    run_id=run.id,
                    executed=state.executed_actions,
                )
                return

    async def _handle_call(
        self,
        agent: AgentModel,
        run: AgentRunModel,
        state: _LoopState,
        call: ToolCall,
        actor_id: str,
        offered: set,
    ) -> ToolResultBlock:
        denial = check_tool_call(
            agent.guardrails, call, state.executed_actions, offered
        )
        if denial is not None:
            logger.info(
                "Tool call denied",
                run_id=run.id,
                tool=call.name,
                reason=denial.reason,
            )
            return ToolResultBlock(
                tool_call_id=call.id, content=denial.message, is_error=True
            )

        output: Any
        is_error = False
        try:
            output = await self.tools.execute(call.name, call.input, actor_id)
        except ToolExecutionError as e:
            is_error = True
            output = str(e) or "Tool execution failed"
            logger.warning(
                "Tool call failed", run_id=run.id, tool=call.name, error=output
            )

        state.executed_actions += 1
        run.tool_calls.append(
            ToolCallRecord(
                id=call.id,
                tool=call.name,
                input=call.input,
                output=output,
                timestamp=_now(),
                is_error=is_error,
            )
        )
        return ToolResultBlock(
            tool_call_id=call.id,
            content=json.dumps(output, default=str),
            is_error=is_error,
        )

    def _terminate(
        self,
        run: AgentRunModel,
        state: _LoopState,
        status: RunStatus,
        error: str,
    ) -> None:
        if state.assistant_text:
            run.messages.append(
                AgentMessage(
                    role="assistant", content=state.assistant_text, timestamp=_now()
                )
            )
        run.status = status
        run.error = error

    async def cancel_queued(self, run: AgentRunModel) -> None:
        """Persist a run cancelled before it started executing."""
        if run.status != RunStatus.QUEUED:
            return
        run.status = RunStatus.CANCELLED
        run.error = "Run cancelled"
        await self._persist(run)
        logger.info("Queued agent run cancelled", agent_id=run.agent_id, run_id=run.id)

    async def _persist(self, run: AgentRunModel) -> None:
        try:
            await self.storage.agent_runs.finish_run(run)
        except Exception:
            logger.exception("Failed to persist agent run", run_id=run.id)
