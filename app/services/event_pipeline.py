"""
Event pipeline: record events, then apply tenant policies in the background.

``log`` returns as soon as the store has recorded the event. Policy
matching and action dispatch run on a detached task whose failures are
logged and kept in ``failures``; they never reach the producer.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Set, Union

from app.core.errors import AutomationError, ErrorCode
from app.core.policy_matcher import PolicyMatcher
from app.infra.logging_config import get_logger
from app.schemas.event import Event, EventCreate, EventFilter
from app.schemas.policy import PolicyAction
from app.services.event_store import EventStore
from app.services.sync_engine import SyncEngine
from app.services.tenant_config_service import TenantConfigStore

logger = get_logger("event_pipeline")

MAX_RECORDED_FAILURES = 100


@dataclass(frozen=True)
class PolicyFailure:
    """A background policy application that failed."""

    event_id: Union[int, str]
    tenant_id: str
    error: str
    code: ErrorCode = ErrorCode.POLICY_EXECUTION_FAILED


class EventPipeline:
    def __init__(
        self,
        config_store: TenantConfigStore,
        store: EventStore,
        sync_engine: Optional[SyncEngine] = None,
        matcher: Optional[PolicyMatcher] = None,
        max_failures: int = MAX_RECORDED_FAILURES,
    ) -> None:
        self._config_store = config_store
        self._store = store
        self._sync_engine = sync_engine
        self._matcher = matcher or PolicyMatcher()
        self._tasks: Set[asyncio.Task] = set()
        self.failures: Deque[PolicyFailure] = deque(maxlen=max_failures)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def log(self, data: EventCreate) -> Event:
        """Record the event and schedule policy application without awaiting it."""
        logger.info(
            "Logging event: tenant_id=%s subject_id=%s type=%s",
            data.tenant_id,
            data.subject_id,
            data.type,
        )
        event = await self._store.append(data)

        task = asyncio.create_task(self._apply_policies_safely(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return event

    async def query(
        self, tenant_id: str, filters: Optional[EventFilter] = None
    ) -> List[Event]:
        logger.info("Querying events: tenant_id=%s filters=%s", tenant_id, filters)
        return await self._store.query(tenant_id, filters)

    @staticmethod
    def conversation_for(event: Event) -> Union[int, str]:
        """Target conversation: payload.conversation_id, else the event subject."""
        conversation_id = event.payload.get("conversation_id")
        if conversation_id is None or conversation_id == "":
            return event.subject_id
        return conversation_id

    async def apply_policies(self, event: Event) -> List[PolicyAction]:
        """Match the tenant's policies against the event and dispatch the actions."""
        config = await self._config_store.get(event.tenant_id)
        logger.info(
            "Applying policies: tenant_id=%s type=%s policies=%s",
            event.tenant_id,
            event.type,
            len(config.policies),
        )
        actions = self._matcher.match(event, config.policies)
        if not actions:
            return actions
        if self._sync_engine is None:
            logger.info(
                "No sync engine configured, %s action(s) not dispatched for event_id=%s",
                len(actions),
                event.id,
            )
            return actions
        await self._sync_engine.execute_actions(
            event.tenant_id, self.conversation_for(event), actions
        )
        return actions

    async def _apply_policies_safely(self, event: Event) -> None:
        try:
            await self.apply_policies(event)
        except Exception as e:
            code = (
                e.code
                if isinstance(e, AutomationError)
                else ErrorCode.POLICY_EXECUTION_FAILED
            )
            logger.error(
                "Policy execution failed: event_id=%s tenant_id=%s code=%s error=%s",
                event.id,
                event.tenant_id,
                code,
                e,
            )
            self.failures.append(
                PolicyFailure(
                    event_id=event.id,
                    tenant_id=event.tenant_id,
                    error=str(e),
                    code=code,
                )
            )

    async def drain(self) -> None:
        """Wait for every scheduled policy application to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
