"""Tenant policy documents and the actions they emit."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from app.constants.actions import ActionType
from app.core.conditions import InvalidCondition, parse_condition
from app.core.errors import ConditionParseError
from app.infra.logging_config import get_logger

logger = get_logger("policy")


class PolicyAction(BaseModel):
    """
    One side effect requested by a policy.

    ``type`` stays a plain string on the wire so that action types added by
    newer producers still load; ``kind`` maps it onto the known set.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> Optional[ActionType]:
        """The known action type, or None if this build does not know it."""
        try:
            return ActionType(self.type)
        except ValueError:
            return None


class Policy(BaseModel):
    """A tenant rule: event type pattern, optional condition, ordered actions."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    event_type: str
    condition: Optional[Any] = None
    actions: list[PolicyAction] = Field(default_factory=list)
    priority: int = 0

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("condition", mode="before")
    @classmethod
    def _parse_condition(cls, value: Any) -> Any:
        if value is None:
            return None
        try:
            return parse_condition(value)
        except ConditionParseError as e:
            # A broken condition disables the policy instead of rejecting the tenant config
            logger.warning("Invalid policy condition, policy will never match: %s", e)
            return InvalidCondition(reason=str(e), raw=value)

    @field_serializer("condition")
    def _serialize_condition(self, condition: Any) -> Any:
        if condition is None:
            return None
        return condition.to_document()
