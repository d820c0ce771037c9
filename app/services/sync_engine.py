"""
Sync engine: pushes automation side effects to the messaging platform.

Two entry points:

- ``sync`` applies an execution plan (messages, label deltas, attribute
  updates) and returns a SyncResult. Message sends are idempotent per
  ``tenant_id:conversation_id:persist_key`` for the life of the engine.
  A sync that meets a key another sync is still sending waits for that
  send and reports its failure, if any.
- ``execute_actions`` runs a policy action list in order.

Each outbound call is retried on its own. A failed call is recorded (in the
result for ``sync``, in the log for ``execute_actions``) and processing
continues with the next one. Only tenant resolution failures propagate.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

import httpx

from app.adapters.base import BaseMessagingClient, ConversationId
from app.adapters.chatwoot import ChatwootClient
from app.config import get_settings
from app.constants.actions import ActionType, PersistKind
from app.core.retry import RetryExecutor, RetryOptions
from app.infra.logging_config import get_logger
from app.schemas.policy import PolicyAction
from app.schemas.sync import ExecutionPlan, SyncResult
from app.schemas.tenant import TenantConfig
from app.services.tenant_config_service import TenantConfigStore

logger = get_logger("sync_engine")

ClientFactory = Callable[[TenantConfig], BaseMessagingClient]
ActionHandler = Callable[
    [BaseMessagingClient, ConversationId, PolicyAction], Awaitable[None]
]

WEBHOOK_TIMEOUT_SECONDS = 15.0


def message_content(value: Any) -> str:
    """Text for a persisted message value; structured values are sent as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def build_messaging_client(config: TenantConfig) -> BaseMessagingClient:
    """Default factory: a Chatwoot client from the tenant's credentials."""
    return ChatwootClient(
        base_url=config.messaging.api_url,
        api_token=config.messaging.api_token,
        account_id=config.messaging.account_id,
        timeout=get_settings().messaging_timeout_seconds,
    )


class SyncEngine:
    """Owns the per-tenant client pool and the idempotency cache."""

    def __init__(
        self,
        config_store: TenantConfigStore,
        client_factory: Optional[ClientFactory] = None,
        retry_options: Optional[RetryOptions] = None,
        webhook_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config_store = config_store
        self._client_factory = client_factory or build_messaging_client
        self._retry = RetryExecutor(retry_options or RetryOptions.from_settings())
        self._clients: Dict[str, BaseMessagingClient] = {}
        self._processed_keys: Set[str] = set()
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._webhook_client = webhook_client
        self._handlers: Dict[ActionType, ActionHandler] = {
            ActionType.SEND_MESSAGE: self._send_message_action,
            ActionType.ASSIGN_AGENT: self._assign_agent_action,
            ActionType.UPDATE_CONTACT: self._update_contact_action,
            ActionType.TRIGGER_WEBHOOK: self._trigger_webhook_action,
            ActionType.ADD_LABEL: self._add_label_action,
            ActionType.UPDATE_ATTRIBUTES: self._update_attributes_action,
        }

    @staticmethod
    def idempotency_key(
        tenant_id: str, conversation_id: ConversationId, persist_key: str
    ) -> str:
        return f"{tenant_id}:{conversation_id}:{persist_key}"

    def register_handler(self, action_type: ActionType, handler: ActionHandler) -> None:
        """Register (or replace) the handler for an action type."""
        self._handlers[action_type] = handler

    def handled_action_types(self) -> Set[ActionType]:
        return set(self._handlers)

    def is_processed(
        self, tenant_id: str, conversation_id: ConversationId, persist_key: str
    ) -> bool:
        return (
            self.idempotency_key(tenant_id, conversation_id, persist_key)
            in self._processed_keys
        )

    async def get_client(self, tenant_id: str) -> BaseMessagingClient:
        """Return the cached client for the tenant, creating it on first use."""
        client = self._clients.get(tenant_id)
        if client is not None:
            return client

        config = await self._config_store.get(tenant_id)
        created = self._client_factory(config)
        # Another task may have created one while the config lookup was suspended
        client = self._clients.setdefault(tenant_id, created)
        if client is created:
            logger.info("Created messaging client for tenant_id=%s", tenant_id)
        else:
            await created.aclose()
        return client

    async def sync(
        self,
        tenant_id: str,
        conversation_id: ConversationId,
        plan: ExecutionPlan,
    ) -> SyncResult:
        """Apply an execution plan. Raises only if the tenant cannot be resolved."""
        logger.info(
            "Starting sync: tenant_id=%s conversation_id=%s messages=%s labels_add=%s labels_remove=%s attributes=%s",
            tenant_id,
            conversation_id,
            sum(1 for e in plan.persist.values() if e.kind == PersistKind.MESSAGE),
            len(plan.labels.add),
            len(plan.labels.remove),
            len(plan.contact_attributes),
        )
        client = await self.get_client(tenant_id)
        result = SyncResult()

        await self._sync_messages(client, tenant_id, conversation_id, plan, result)
        await self._sync_labels(client, conversation_id, plan, result)
        await self._sync_attributes(client, conversation_id, plan, result)

        if plan.emit_events:
            logger.info(
                "Plan emit_events are not dispatched by sync: tenant_id=%s events=%s",
                tenant_id,
                plan.emit_events,
            )

        logger.info(
            "Sync completed: tenant_id=%s conversation_id=%s messages_sent=%s labels_updated=%s attributes_updated=%s errors=%s",
            tenant_id,
            conversation_id,
            result.messages_sent,
            result.labels_updated,
            result.attributes_updated,
            len(result.errors),
        )
        return result

    async def _sync_messages(
        self,
        client: BaseMessagingClient,
        tenant_id: str,
        conversation_id: ConversationId,
        plan: ExecutionPlan,
        result: SyncResult,
    ) -> None:
        for key, entry in plan.persist.items():
            if entry.kind != PersistKind.MESSAGE:
                continue
            message_key = self.idempotency_key(tenant_id, conversation_id, key)

            in_flight = self._in_flight.get(message_key)
            if in_flight is not None:
                # Another sync is sending this key; its outcome is ours too
                logger.info("Waiting for in-flight message: %s", message_key)
                error = await asyncio.shield(in_flight)
                if error is not None:
                    result.errors.append(f"Failed to send message '{key}': {error}")
                continue
            if message_key in self._processed_keys:
                logger.info("Skipping duplicate message: %s", message_key)
                continue

            # Reserve before the first await so a concurrent sync cannot send it too
            self._processed_keys.add(message_key)
            outcome: asyncio.Future = asyncio.get_running_loop().create_future()
            self._in_flight[message_key] = outcome
            try:
                await self._retry.run(
                    partial(
                        client.send_message,
                        conversation_id,
                        message_content(entry.value),
                    )
                )
            except Exception as e:
                self._processed_keys.discard(message_key)
                outcome.set_result(str(e))
                result.errors.append(f"Failed to send message '{key}': {e}")
                logger.error("Failed to send message: key=%s error=%s", key, e)
            else:
                outcome.set_result(None)
                result.messages_sent += 1
            finally:
                if not outcome.done():
                    self._processed_keys.discard(message_key)
                    outcome.set_result("send was cancelled")
                self._in_flight.pop(message_key, None)

    async def _sync_labels(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        plan: ExecutionPlan,
        result: SyncResult,
    ) -> None:
        if plan.labels.add:
            try:
                await self._retry.run(
                    partial(client.add_labels, conversation_id, list(plan.labels.add))
                )
                result.labels_updated += len(plan.labels.add)
            except Exception as e:
                result.errors.append(f"Failed to add labels: {e}")
                logger.error("Failed to add labels: error=%s", e)
        if plan.labels.remove:
            try:
                await self._retry.run(
                    partial(
                        client.remove_labels, conversation_id, list(plan.labels.remove)
                    )
                )
                result.labels_updated += len(plan.labels.remove)
            except Exception as e:
                result.errors.append(f"Failed to remove labels: {e}")
                logger.error("Failed to remove labels: error=%s", e)

    async def _sync_attributes(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        plan: ExecutionPlan,
        result: SyncResult,
    ) -> None:
        if not plan.contact_attributes:
            return
        try:
            await self._retry.run(
                partial(
                    client.update_conversation,
                    conversation_id,
                    custom_attributes=dict(plan.contact_attributes),
                )
            )
            result.attributes_updated += len(plan.contact_attributes)
        except Exception as e:
            result.errors.append(f"Failed to update attributes: {e}")
            logger.error("Failed to update attributes: error=%s", e)

    async def execute_actions(
        self,
        tenant_id: str,
        conversation_id: ConversationId,
        actions: Iterable[PolicyAction],
    ) -> None:
        """
        Run policy actions one after another.

        Unknown action types are logged and skipped. A failing action is
        logged and does not stop the remaining ones.
        """
        client = await self.get_client(tenant_id)
        for action in actions:
            kind = action.kind
            handler = self._handlers.get(kind) if kind is not None else None
            if handler is None:
                logger.warning(
                    "Unsupported action type: type=%s tenant_id=%s",
                    action.type,
                    tenant_id,
                )
                continue
            logger.info(
                "Executing action: type=%s tenant_id=%s conversation_id=%s",
                action.type,
                tenant_id,
                conversation_id,
            )
            try:
                await handler(client, conversation_id, action)
            except Exception as e:
                logger.error(
                    "Failed to execute action: type=%s error=%s", action.type, e
                )

    async def _send_message_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        content = message_content(action.params.get("content"))
        await self._retry.run(partial(client.send_message, conversation_id, content))

    async def _add_label_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        label = action.params.get("label")
        if not label:
            logger.info("add_label without 'label' param, nothing to do")
            return
        await self._retry.run(partial(client.add_labels, conversation_id, [str(label)]))

    async def _update_attributes_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        attributes = action.params.get("attributes")
        if not attributes:
            logger.info("update_attributes without 'attributes' param, nothing to do")
            return
        if not isinstance(attributes, Mapping):
            raise ValueError("'attributes' must be an object")
        await self._retry.run(
            partial(
                client.update_conversation,
                conversation_id,
                custom_attributes=dict(attributes),
            )
        )

    async def _assign_agent_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        agent_id = action.params.get("agent_id")
        if agent_id is None or agent_id == "":
            logger.info("assign_agent without 'agent_id' param, nothing to do")
            return
        await self._retry.run(
            partial(
                client.update_conversation, conversation_id, assignee_id=int(agent_id)
            )
        )

    async def _trigger_webhook_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        url = action.params.get("url")
        if not url:
            logger.info("trigger_webhook without 'url' param, nothing to do")
            return
        payload = action.params.get("payload") or {}
        await self._retry.run(partial(self._post_webhook, str(url), payload))

    async def _post_webhook(self, url: str, payload: dict) -> None:
        if self._webhook_client is None:
            self._webhook_client = httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS)
        resp = await self._webhook_client.post(url, json=payload)
        resp.raise_for_status()
        logger.info("Webhook delivered: url=%s status=%s", url, resp.status_code)

    async def _update_contact_action(
        self,
        client: BaseMessagingClient,
        conversation_id: ConversationId,
        action: PolicyAction,
    ) -> None:
        logger.info(
            "No contact handler registered, skipping update_contact: conversation_id=%s",
            conversation_id,
        )

    def clear_cache(self) -> None:
        """Forget every sent message key (all tenants, all conversations)."""
        self._processed_keys.clear()
        logger.info("Cleared idempotency cache")

    async def dispose(self) -> None:
        """Close pooled clients. The engine can still be used afterwards."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
        if self._webhook_client is not None:
            await self._webhook_client.aclose()
            self._webhook_client = None
