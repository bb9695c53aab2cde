"""Per-entity listener lifecycle for automations and agents.

One registry exists per domain. It owns the bus subscription and cron jobs
of every registered entity, and guarantees at most one live subscription
per entity id.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import structlog

from ..events.bus import EventBus, EventHandler
from ..events.types import WILDCARD, DomainEvent
from ..scheduler.scheduler import JobScheduler

logger = structlog.get_logger()


class TriggerSource(Protocol):
    """Domain side of a registry: loads entities and reacts to triggers."""

    domain: str

    async def load(self, entity_id: str) -> Optional[Any]: ...

    async def list_active(self) -> Sequence[Any]: ...

    def wants_events(self, entity: Any) -> bool: ...

    def schedules(self, entity: Any) -> List[str]: ...

    async def handle_event(self, entity_id: str, event: DomainEvent) -> None: ...

    async def handle_schedule(self, entity_id: str, cron_expression: str) -> None: ...


@dataclass
class _Registration:
    handler: Optional[EventHandler] = None
    job_ids: List[str] = field(default_factory=list)


class TriggerRegistry:
    """Register and unregister event and schedule listeners by entity id."""

    def __init__(
        self,
        bus: EventBus,
        source: TriggerSource,
        scheduler: Optional[JobScheduler] = None,
    ) -> None:
        self.bus = bus
        self.source = source
        self.scheduler = scheduler
        self._registrations: Dict[str, _Registration] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    @property
    def registered_ids(self) -> List[str]:
        return list(self._registrations)

    async def register(self, entity_id: str) -> bool:
        """(Re)register listeners for an entity from its current stored state.

        Returns True when the entity ended up with at least one listener.
        """
        async with self._lock:
            self._unregister_locked(entity_id)
            entity = await self.source.load(entity_id)
            if entity is None or not entity.is_active:
                logger.debug(
                    "Entity not registered, missing or inactive",
                    domain=self.source.domain,
                    entity_id=entity_id,
                )
                return False
            return self._register_locked(entity)

    async def unregister(self, entity_id: str) -> None:
        """Remove listeners for an entity. No-op if none are registered."""
        async with self._lock:
            self._unregister_locked(entity_id)

    async def init_listeners(self) -> int:
        """Register every active entity. Must be called once at startup."""
        if self._initialized:
            raise RuntimeError(
                f"{self.source.domain} listeners already initialized"
            )
        self._initialized = True

        entities = await self.source.list_active()
        registered = 0
        async with self._lock:
            for entity in entities:
                self._unregister_locked(entity.id)
                if self._register_locked(entity):
                    registered += 1

        logger.info(
            "Trigger listeners initialized",
            domain=self.source.domain,
            registered=registered,
            total=len(entities),
        )
        return registered

    async def shutdown(self) -> None:
        """Unregister everything."""
        async with self._lock:
            for entity_id in list(self._registrations):
                self._unregister_locked(entity_id)
        logger.info("Trigger listeners removed", domain=self.source.domain)

    def _register_locked(self, entity: Any) -> bool:
        entity_id = entity.id
        registration = _Registration()

        if self.source.wants_events(entity):
            registration.handler = self._make_handler(entity_id)
            self.bus.subscribe(WILDCARD, registration.handler)

        if self.scheduler is not None:
            for index, cron in enumerate(self.source.schedules(entity)):
                job_id = f"{self.source.domain}:{entity_id}:{index}"
                try:
                    self.scheduler.add_cron_job(
                        job_id,
                        cron,
                        self.source.handle_schedule,
                        name=f"{self.source.domain} {entity_id}",
                        kwargs={"entity_id": entity_id, "cron_expression": cron},
                    )
                except ValueError as e:
                    logger.warning(
                        "Invalid cron expression, schedule skipped",
                        domain=self.source.domain,
                        entity_id=entity_id,
                        cron=cron,
                        error=str(e),
                    )
                    continue
                registration.job_ids.append(job_id)

        if registration.handler is None and not registration.job_ids:
            return False

        self._registrations[entity_id] = registration
        logger.debug(
            "Entity registered",
            domain=self.source.domain,
            entity_id=entity_id,
            events=registration.handler is not None,
            schedules=len(registration.job_ids),
        )
        return True

    def _unregister_locked(self, entity_id: str) -> None:
        registration = self._registrations.pop(entity_id, None)
        if registration is None:
            return
        if registration.handler is not None:
            self.bus.unsubscribe(WILDCARD, registration.handler)
        if self.scheduler is not None:
            for job_id in registration.job_ids:
                self.scheduler.remove_job(job_id)
        logger.debug(
            "Entity unregistered", domain=self.source.domain, entity_id=entity_id
        )

    def _make_handler(self, entity_id: str) -> EventHandler:
        source = self.source

        async def handle(event: DomainEvent) -> None:
            await source.handle_event(entity_id, event)

        handle.__qualname__ = f"{source.domain}_listener[{entity_id}]"
        return handle
