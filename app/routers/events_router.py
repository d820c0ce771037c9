"""
Events API: record business events and read them back.

Recording returns as soon as the event is stored; policy application runs
in the background.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.routers.utils.dependencies import get_pipeline
from app.schemas.event import EventCreate, EventFilter
from app.services.event_pipeline import EventPipeline

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=dict[str, Any], status_code=201)
async def log_event(
    body: EventCreate,
    pipeline: EventPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Record an event. Return {"data": event}."""
    event = await pipeline.log(body)
    return {"data": event.model_dump(mode="json")}


@router.get("/{tenant_id}", response_model=dict[str, Any])
async def query_events(
    tenant_id: str,
    subject_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    pipeline: EventPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """List a tenant's events; given filters are ANDed."""
    filters = EventFilter(subject_id=subject_id, type=type, since=since, until=until)
    events = await pipeline.query(tenant_id, filters)
    return {"data": [e.model_dump(mode="json") for e in events]}
