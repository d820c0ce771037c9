"""Tests for the in-memory and SQL event stores."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import AutomationError, ErrorCode
from app.models.automation_event import AutomationEvent
from app.schemas.event import EventCreate, EventFilter
from app.services.event_store import InMemoryEventStore, SqlEventStore

BASE = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def store(request, db_manager):
    if request.param == "memory":
        return InMemoryEventStore()
    return SqlEventStore(db_manager.session_factory)


def make(type="customer_replied", subject_id=456, minutes=0, tenant_id="tenant-1", payload=None):
    return EventCreate(
        tenant_id=tenant_id,
        subject_id=subject_id,
        type=type,
        payload=payload or {"text": "hi"},
        timestamp=BASE + timedelta(minutes=minutes),
    )


@pytest.mark.asyncio
async def test_append_assigns_ids_and_keeps_payload(store, faker):
    text = faker.sentence()
    first = await store.append(make(payload={"nested": {"a": [1, 2]}, "text": text}))
    second = await store.append(make())

    assert first.id != second.id
    assert first.payload == {"nested": {"a": [1, 2]}, "text": text}
    assert first.timestamp == BASE


@pytest.mark.asyncio
async def test_append_defaults_timestamp_to_now(store):
    before = datetime.now(timezone.utc)
    event = await store.append(
        EventCreate(tenant_id="tenant-1", subject_id=1, type="x")
    )
    assert event.timestamp >= before - timedelta(seconds=1)


@pytest.mark.asyncio
async def test_query_is_scoped_to_tenant_and_ordered(store):
    await store.append(make(minutes=10))
    await store.append(make(minutes=0))
    await store.append(make(tenant_id="other", minutes=5))

    events = await store.query("tenant-1")

    assert [e.timestamp for e in events] == [BASE, BASE + timedelta(minutes=10)]
    assert all(e.tenant_id == "tenant-1" for e in events)


@pytest.mark.asyncio
async def test_query_filters_are_anded(store):
    await store.append(make(type="a", subject_id=1, minutes=0))
    await store.append(make(type="a", subject_id=2, minutes=1))
    await store.append(make(type="b", subject_id=1, minutes=2))
    await store.append(make(type="a", subject_id=1, minutes=3))

    events = await store.query(
        "tenant-1",
        EventFilter(
            type="a",
            subject_id="1",
            since=BASE + timedelta(minutes=1),
            until=BASE + timedelta(minutes=3),
        ),
    )

    assert len(events) == 1
    assert events[0].timestamp == BASE + timedelta(minutes=3)


@pytest.mark.asyncio
async def test_query_unknown_tenant_is_empty(store):
    await store.append(make())
    assert await store.query("nobody") == []


@pytest.mark.asyncio
async def test_sql_store_persists_rows(db_manager, db):
    store = SqlEventStore(db_manager.session_factory)
    await store.append(make(type="intent_detected", subject_id=77))

    row = db.query(AutomationEvent).one()
    assert row.event_type == "intent_detected"
    assert row.subject_id == "77"


@pytest.mark.asyncio
async def test_sql_store_wraps_database_errors():
    session = MagicMock()
    session.commit.side_effect = OperationalError("INSERT", {}, Exception("locked"))
    store = SqlEventStore(lambda: session)

    with pytest.raises(AutomationError) as exc_info:
        await store.append(make())

    assert exc_info.value.code == ErrorCode.EVENT_STORE_FAILED
    session.rollback.assert_called_once()
    session.close.assert_called_once()


@pytest.mark.asyncio
async def test_sql_store_runs_sessions_off_the_event_loop_thread(db_manager):
    threads = []

    def session_factory():
        threads.append(threading.get_ident())
        return db_manager.session_factory()

    store = SqlEventStore(session_factory)
    await store.append(make())
    await store.query("tenant-1")

    assert len(threads) == 2
    assert threading.get_ident() not in threads
