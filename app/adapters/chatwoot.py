"""
Chatwoot messaging client.

Uses the Chatwoot application API (``/api/v1/accounts/{account_id}``) over
httpx. Every method performs exactly one request.
"""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from app.adapters.base import BaseMessagingClient, ConversationId
from app.core.errors import MessagingPlatformError
from app.infra.logging_config import get_logger
from app.schemas.messaging import (
    ConversationResponse,
    ConversationStatus,
    MessageKind,
    MessageResponse,
    UpdateConversationRequest,
)

logger = get_logger("chatwoot_client")

TIMEOUT_SECONDS = 30.0
ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


def conversation_path(conversation_id: ConversationId, suffix: str = "") -> str:
    """Path of a conversation resource; the id is always a single path segment."""
    segment = quote(str(conversation_id), safe="")
    if segment in ("", ".", ".."):
        raise ValueError(f"Invalid conversation id: {conversation_id!r}")
    return f"/conversations/{segment}{suffix}"


class ChatwootClient(BaseMessagingClient):
    """Chatwoot client for one account."""

    TOKEN_HEADER = "api_access_token"

    def __init__(
        self,
        base_url: str,
        api_token: str,
        account_id: int,
        timeout: float = TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._account_id = account_id
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api/v1/accounts/{account_id}",
            headers={
                self.TOKEN_HEADER: api_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("Chatwoot API request: %s %s", method, path)
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise MessagingPlatformError(
                f"Failed to {action}: {e}", details={"path": path}
            ) from e
        if resp.is_error:
            body = resp.text[:500] if resp.text else "no body"
            logger.error(
                "Chatwoot API error: status=%s path=%s body=%s",
                resp.status_code,
                path,
                body,
            )
            raise MessagingPlatformError(
                f"Failed to {action}: HTTP {resp.status_code}",
                status_code=resp.status_code,
                details={"path": path, "body": body},
            )
        return resp

    def _parse(
        self, resp: httpx.Response, model: Type[ResponseModel], action: str
    ) -> ResponseModel:
        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise MessagingPlatformError(
                f"Failed to {action}: invalid response body: {e}",
                status_code=resp.status_code,
            ) from e

    async def send_message(
        self,
        conversation_id: ConversationId,
        content: str,
        message_kind: MessageKind = MessageKind.OUTGOING,
        private: bool = False,
    ) -> MessageResponse:
        resp = await self._request(
            "POST",
            conversation_path(conversation_id, "/messages"),
            "send message",
            json={
                "content": content,
                "message_type": int(message_kind),
                "private": private,
            },
        )
        message = self._parse(resp, MessageResponse, "send message")
        logger.info(
            "Message sent to Chatwoot: conversation_id=%s message_id=%s",
            conversation_id,
            message.id,
        )
        return message

    async def update_conversation(
        self,
        conversation_id: ConversationId,
        status: Optional[ConversationStatus] = None,
        assignee_id: Optional[int] = None,
        custom_attributes: Optional[dict[str, Any]] = None,
    ) -> ConversationResponse:
        body = UpdateConversationRequest(
            status=status,
            assignee_id=assignee_id,
            custom_attributes=custom_attributes,
        )
        resp = await self._request(
            "PATCH",
            conversation_path(conversation_id),
            "update conversation",
            json=body.to_payload(),
        )
        conversation = self._parse(resp, ConversationResponse, "update conversation")
        logger.info(
            "Conversation updated: conversation_id=%s status=%s",
            conversation_id,
            conversation.status,
        )
        return conversation

    async def add_labels(
        self, conversation_id: ConversationId, labels: list[str]
    ) -> ConversationResponse:
        resp = await self._request(
            "POST",
            conversation_path(conversation_id, "/labels"),
            "add labels",
            json={"labels": labels},
        )
        conversation = self._parse(resp, ConversationResponse, "add labels")
        logger.info(
            "Labels added to conversation: conversation_id=%s labels=%s",
            conversation_id,
            labels,
        )
        return conversation

    async def remove_labels(
        self, conversation_id: ConversationId, labels: list[str]
    ) -> None:
        await self._request(
            "DELETE",
            conversation_path(conversation_id, "/labels"),
            "remove labels",
            json={"labels": labels},
        )
        logger.info(
            "Labels removed from conversation: conversation_id=%s labels=%s",
            conversation_id,
            labels,
        )

    async def get_conversation(
        self, conversation_id: ConversationId
    ) -> ConversationResponse:
        resp = await self._request(
            "GET", conversation_path(conversation_id), "fetch conversation"
        )
        return self._parse(resp, ConversationResponse, "fetch conversation")

    async def aclose(self) -> None:
        await self._client.aclose()
