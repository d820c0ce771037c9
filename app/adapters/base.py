"""
Messaging platform client interface.

Clients wrap one tenant's account on an external conversation platform.
They perform a single request per call and raise MessagingPlatformError on
failure; retrying is left to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from app.schemas.messaging import (
    ConversationResponse,
    ConversationStatus,
    MessageKind,
    MessageResponse,
)

ConversationId = Union[int, str]


class BaseMessagingClient(ABC):
    """Contract for messaging platform clients. New platforms implement this interface."""

    @abstractmethod
    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
        message_kind: MessageKind = MessageKind.OUTGOING,
        private: bool = False,
    ) -> MessageResponse:
        """Post a message into the conversation."""
        ...

    @abstractmethod
    async def update_conversation(
        self,
        conversation_id: ConversationId,
        status: Optional[ConversationStatus] = None,
        assignee_id: Optional[int] = None,
        custom_attributes: Optional[dict[str, Any]] = None,
    ) -> ConversationResponse:
        """Update status, assignee or custom attributes. Only given fields change."""
        ...

    @abstractmethod
    async def add_labels(
        self, conversation_id: ConversationId, labels: list[str]
    ) -> ConversationResponse:
        ...

    @abstractmethod
    async def remove_labels(
        self, conversation_id: ConversationId, labels: list[str]
    ) -> None:
        ...

    @abstractmethod
    async def get_conversation(
        self, conversation_id: ConversationId
    ) -> ConversationResponse:
        ...

    async def aclose(self) -> None:
        """Release network resources. Override if the client holds any."""
        return None
