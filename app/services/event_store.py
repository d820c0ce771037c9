"""
Event record stores used by the event pipeline.

Events are immutable; stores only append and read.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.errors import AutomationError, ErrorCode
from app.models.automation_event import AutomationEvent
from app.schemas.event import Event, EventCreate, EventFilter


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EventStore(Protocol):
    async def append(self, data: EventCreate) -> Event: ...

    async def query(
        self, tenant_id: str, filters: Optional[EventFilter] = None
    ) -> List[Event]: ...


class InMemoryEventStore:
    """List-backed store with sequential integer ids."""

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._next_id = 1

    async def append(self, data: EventCreate) -> Event:
        event = Event(
            id=self._next_id,
            tenant_id=data.tenant_id,
            subject_id=data.subject_id,
            type=data.type,
            payload=data.payload,
            timestamp=data.timestamp or datetime.now(timezone.utc),
        )
        self._next_id += 1
        self._events.append(event)
        return event

    async def query(
        self, tenant_id: str, filters: Optional[EventFilter] = None
    ) -> List[Event]:
        filters = filters or EventFilter()
        matched = [
            e for e in self._events if e.tenant_id == tenant_id and filters.matches(e)
        ]
        return sorted(matched, key=lambda e: e.timestamp)


class SqlEventStore:
    """
    Stores events in the automation_events table.

    Sessions are synchronous; each call runs in the threadpool so the event
    loop is not blocked on the database.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_event(row: AutomationEvent) -> Event:
        return Event(
            id=row.id,
            tenant_id=row.tenant_id,
            subject_id=row.subject_id,
            type=row.event_type,
            payload=row.payload or {},
            timestamp=row.timestamp,
        )

    async def append(self, data: EventCreate) -> Event:
        return await run_in_threadpool(self._append, data)

    async def query(
        self, tenant_id: str, filters: Optional[EventFilter] = None
    ) -> List[Event]:
        return await run_in_threadpool(self._query, tenant_id, filters)

    def _append(self, data: EventCreate) -> Event:
        row = AutomationEvent(
            tenant_id=data.tenant_id,
            subject_id=str(data.subject_id),
            event_type=data.type,
            payload=data.payload,
            timestamp=_utc(data.timestamp or datetime.now(timezone.utc)),
        )
        db = self._session_factory()
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_event(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise AutomationError(
                ErrorCode.EVENT_STORE_FAILED,
                f"Failed to record event: {e}",
                {"tenant_id": data.tenant_id, "event_type": data.type},
            ) from e
        finally:
            db.close()

    def _query(
        self, tenant_id: str, filters: Optional[EventFilter] = None
    ) -> List[Event]:
        filters = filters or EventFilter()
        db = self._session_factory()
        try:
            q = db.query(AutomationEvent).filter(AutomationEvent.tenant_id == tenant_id)
            if filters.subject_id is not None:
                q = q.filter(AutomationEvent.subject_id == str(filters.subject_id))
            if filters.type is not None:
                q = q.filter(AutomationEvent.event_type == filters.type)
            if filters.since is not None:
                q = q.filter(AutomationEvent.timestamp >= _utc(filters.since))
            if filters.until is not None:
                q = q.filter(AutomationEvent.timestamp <= _utc(filters.until))
            rows = q.order_by(AutomationEvent.timestamp.asc(), AutomationEvent.id.asc()).all()
            return [self._to_event(r) for r in rows]
        finally:
            db.close()
