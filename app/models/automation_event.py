"""
AutomationEvent model: one row per event recorded by the event pipeline.

Insert-only. Queried by tenant, optionally narrowed by subject, type and
timestamp range.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from app.db import Base


class AutomationEvent(Base):
    __tablename__ = "automation_events"

    __table_args__ = (
        Index(
            "ix_automation_events_tenant_subject_timestamp",
            "tenant_id",
            "subject_id",
            "timestamp",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(255), nullable=False)
    subject_id = Column(String(255), nullable=False)
    event_type = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    timestamp = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
