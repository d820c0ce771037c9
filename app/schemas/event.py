"""Event contracts: what producers submit and what the record store returns."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EventCreate(BaseModel):
    """Event as submitted by a producer (no id yet)."""

    tenant_id: str = Field(min_length=1)
    subject_id: Union[int, str] = Field(
        validation_alias=AliasChoices("subject_id", "contact_id")
    )
    type: str = Field(
        min_length=1, validation_alias=AliasChoices("type", "event_type")
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class Event(BaseModel):
    """Immutable recorded event."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    tenant_id: str
    subject_id: Union[int, str]
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)


class EventFilter(BaseModel):
    """Query filter; every field that is set must match (AND)."""

    subject_id: Optional[Union[int, str]] = None
    type: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @field_validator("since", "until")
    @classmethod
    def _utc_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def matches(self, event: Event) -> bool:
        if self.subject_id is not None and str(event.subject_id) != str(
            self.subject_id
        ):
            return False
        if self.type is not None and event.type != self.type:
            return False
        if self.since is not None and event.timestamp < self.since:
            return False
        if self.until is not None and event.timestamp > self.until:
            return False
        return True
