"""
Messaging platform (Chatwoot) payloads.

Responses are validated on receipt so malformed bodies surface as
platform errors instead of leaking into the core.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

ConversationStatus = Literal["open", "resolved", "pending"]


class MessageKind(IntEnum):
    INCOMING = 0
    OUTGOING = 1


class MessageResponse(BaseModel):
    id: int
    content: Optional[str] = None
    message_type: Union[int, str]
    created_at: Union[int, float, str, None] = None
    conversation_id: Optional[int] = None


class ConversationResponse(BaseModel):
    id: int
    status: str
    labels: list[str] = Field(default_factory=list)
    custom_attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("labels", "custom_attributes", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info) -> Any:
        if value is None:
            return [] if info.field_name == "labels" else {}
        return value


class UpdateConversationRequest(BaseModel):
    """PATCH body; unset fields are not sent."""

    status: Optional[ConversationStatus] = None
    assignee_id: Optional[int] = None
    custom_attributes: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
