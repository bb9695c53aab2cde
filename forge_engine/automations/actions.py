"""Sequential, fail-fast execution of automation action lists."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..ai.registry import ProviderRegistry
from ..ai.types import Message
from ..exceptions import ActionExecutionError
from ..gateway import BoardGateway
from ..storage.models import ActionOutcome, ActionType, AutomationAction
from ..utils.constants import DEFAULT_AI_STEP_MAX_TOKENS, DEFAULT_WEBHOOK_TIMEOUT_SECONDS

logger = structlog.get_logger()


@dataclass
class ActionListResult:
    outcomes: List[ActionOutcome] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


class ActionExecutor:
    """Run automation actions against the board gateway.

    Mutations pass ``emit_events=False`` so an automation never re-triggers
    automations through its own side effects.
    """

    def __init__(
        self,
        gateway: BoardGateway,
        providers: ProviderRegistry,
        http_client: Optional[httpx.AsyncClient] = None,
        ai_step_max_tokens: int = DEFAULT_AI_STEP_MAX_TOKENS,
        webhook_timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
    ):
        self.gateway = gateway
        self.providers = providers
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=webhook_timeout)
        self.ai_step_max_tokens = ai_step_max_tokens
        self.webhook_timeout = webhook_timeout

    async def execute_all(
        self,
        actions: List[AutomationAction],
        trigger_data: Dict[str, Any],
        actor_id: str,
    ) -> ActionListResult:
        """Execute actions in order, stopping at the first failure."""
        result = ActionListResult()

        for action in actions:
            try:
                output = await self.execute(action, trigger_data, actor_id)
            except Exception as e:
                message = str(e) or "Action failed"
                logger.warning(
                    "Automation action failed",
                    action=action.raw_type,
                    error=message,
                )
                result.outcomes.append(
                    ActionOutcome(action=action.raw_type, result=None, error=message)
                )
                result.success = False
                result.error = message
                break
            result.outcomes.append(ActionOutcome(action=action.raw_type, result=output))

        return result

    async def execute(
        self,
        action: AutomationAction,
        trigger_data: Dict[str, Any],
        actor_id: str,
    ) -> Any:
        """Execute a single action and return its result."""
        config = action.config

        if action.type == ActionType.CHANGE_COLUMN:
            return await self.gateway.update_item(
                item_id=trigger_data.get("itemId"),
                actor_id=actor_id,
                column_values={config.get("columnId"): config.get("value")},
                emit_events=False,
            )

        if action.type == ActionType.CREATE_ITEM:
            return await self.gateway.create_item(
                board_id=config.get("boardId") or trigger_data.get("boardId"),
                group_id=config.get("groupId"),
                name=config.get("value"),
                actor_id=actor_id,
                column_values=config.get("columnValues"),
                emit_events=False,
            )

        if action.type == ActionType.MOVE_ITEM:
            return await self.gateway.update_item(
                item_id=trigger_data.get("itemId"),
                actor_id=actor_id,
                group_id=config.get("groupId"),
                emit_events=False,
            )

        if action.type == ActionType.NOTIFY:
            logger.info(
                "Automation notification",
                message=config.get("message"),
                item_id=trigger_data.get("itemId"),
            )
            return {"notified": True, "message": config.get("message")}

        if action.type == ActionType.SEND_EMAIL:
            logger.info(
                "Automation email",
                user_id=config.get("userId"),
                message=config.get("message"),
            )
            return {"sent": True, "userId": config.get("userId")}

        if action.type == ActionType.WEBHOOK:
            return await self._fire_webhook(config, trigger_data)

        if action.type == ActionType.AI_STEP:
            return await self._run_ai_step(config)

        raise ActionExecutionError(
            f"Unknown action type: {action.raw_type}", action.raw_type
        )

    async def _fire_webhook(
        self, config: Dict[str, Any], trigger_data: Dict[str, Any]
    ) -> Dict[str, Any]:
        url = config.get("webhookUrl")
        if not url:
            raise ActionExecutionError("Webhook action has no webhookUrl", "webhook")

        logger.info("Firing automation webhook", url=url)
        try:
            response = await self.http_client.post(
                url, json=trigger_data, timeout=self.webhook_timeout
            )
        except httpx.HTTPError as e:
            raise ActionExecutionError(f"Webhook request failed: {e}", "webhook") from e
        if response.is_error:
            raise ActionExecutionError(
                f"Webhook returned HTTP {response.status_code}", "webhook"
            )
        return {"webhookFired": True, "statusCode": response.status_code}

    async def _run_ai_step(self, config: Dict[str, Any]) -> Dict[str, Any]:
        prompt = config.get("aiPrompt")
        if not prompt:
            raise ActionExecutionError("ai_step action has no aiPrompt", "ai_step")

        provider = self.providers.get_provider()
        model = self.providers.default_model()
        text = await provider.complete(
            model=model,
            messages=[Message(role="user", content=str(prompt))],
            max_tokens=self.ai_step_max_tokens,
        )
        return {"aiResponse": text}

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
