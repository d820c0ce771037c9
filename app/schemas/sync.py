"""Execution plans submitted to the sync engine and the results it returns."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.constants.actions import PersistKind
from app.schemas.policy import PolicyAction


class PersistEntry(BaseModel):
    """A keyed effect to persist; only ``message`` entries are sent by sync."""

    model_config = ConfigDict(frozen=True)

    kind: PersistKind = Field(validation_alias=AliasChoices("kind", "type"))
    value: Any = None


class LabelDelta(BaseModel):
    add: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove


class ExecutionPlan(BaseModel):
    """Pre-resolved batch of effects for one conversation."""

    persist: dict[str, PersistEntry] = Field(default_factory=dict)
    labels: LabelDelta = Field(default_factory=LabelDelta)
    contact_attributes: dict[str, Any] = Field(default_factory=dict)
    emit_events: list[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Counts of what landed plus one readable string per failure."""

    messages_sent: int = 0
    labels_updated: int = 0
    attributes_updated: int = 0
    errors: list[str] = Field(default_factory=list)


class SyncRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    conversation_id: int = Field(gt=0)
    execution_plan: ExecutionPlan


class ExecuteActionsRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    conversation_id: int = Field(gt=0)
    actions: list[PolicyAction] = Field(default_factory=list)
