"""Tests for SyncEngine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.adapters.chatwoot import ChatwootClient
from app.constants.actions import ActionType
from app.core.errors import MessagingPlatformError, TenantNotFoundError
from app.schemas.policy import PolicyAction
from app.schemas.sync import ExecutionPlan
from app.services.sync_engine import (
    SyncEngine,
    build_messaging_client,
    message_content,
)
from tests.fixtures.messaging_fixtures import CONVERSATION_ID
from tests.fixtures.tenant_fixtures import TENANT_ID


def message_plan(**extra) -> ExecutionPlan:
    return ExecutionPlan.model_validate(
        {"persist": {"welcome": {"type": "message", "value": "Hello"}}, **extra}
    )


@pytest.mark.asyncio
async def test_sync_sends_message_once_per_key(sync_engine, messaging_client):
    first = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())
    second = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())

    assert first.messages_sent == 1
    assert second.messages_sent == 0
    assert second.errors == []
    messaging_client.send_message.assert_awaited_once_with(CONVERSATION_ID, "Hello")


@pytest.mark.asyncio
async def test_clear_cache_allows_resend(sync_engine, messaging_client):
    await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())
    assert sync_engine.is_processed(TENANT_ID, CONVERSATION_ID, "welcome")

    sync_engine.clear_cache()
    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())

    assert result.messages_sent == 1
    assert messaging_client.send_message.await_count == 2


@pytest.mark.asyncio
async def test_idempotency_is_scoped_per_conversation(sync_engine, messaging_client):
    await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())
    other = await sync_engine.sync(TENANT_ID, 789, message_plan())

    assert other.messages_sent == 1
    assert messaging_client.send_message.await_count == 2


@pytest.mark.asyncio
async def test_non_message_persist_entries_are_not_sent(sync_engine, messaging_client):
    plan = ExecutionPlan.model_validate(
        {
            "persist": {
                "tier": {"type": "attribute", "value": "gold"},
                "flag": {"type": "label", "value": "vip"},
            }
        }
    )
    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, plan)

    assert result.messages_sent == 0
    messaging_client.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_partial_failure_is_accumulated(sync_engine, messaging_client):
    messaging_client.send_message.side_effect = MessagingPlatformError("HTTP 500")
    plan = message_plan(labels={"add": ["urgent"], "remove": []})

    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, plan)

    assert result.messages_sent == 0
    assert result.labels_updated > 0
    assert len(result.errors) == 1
    assert "welcome" in result.errors[0]
    # Every attempt was made before giving up
    assert messaging_client.send_message.await_count == 3


@pytest.mark.asyncio
async def test_failed_message_is_not_marked_processed(sync_engine, messaging_client):
    messaging_client.send_message.side_effect = RuntimeError("down")
    await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())
    assert not sync_engine.is_processed(TENANT_ID, CONVERSATION_ID, "welcome")

    messaging_client.send_message.side_effect = None
    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan())
    assert result.messages_sent == 1


@pytest.mark.asyncio
async def test_labels_add_and_remove_are_independent(sync_engine, messaging_client):
    messaging_client.remove_labels.side_effect = RuntimeError("nope")
    plan = ExecutionPlan.model_validate(
        {"labels": {"add": ["a", "b"], "remove": ["c"]}}
    )

    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, plan)

    messaging_client.add_labels.assert_awaited_once_with(CONVERSATION_ID, ["a", "b"])
    assert result.labels_updated == 2
    assert result.errors == ["Failed to remove labels: nope"]


@pytest.mark.asyncio
async def test_contact_attributes_update_conversation(sync_engine, messaging_client):
    plan = ExecutionPlan.model_validate(
        {"contact_attributes": {"tier": "gold", "score": 7}}
    )

    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, plan)

    messaging_client.update_conversation.assert_awaited_once_with(
        CONVERSATION_ID, custom_attributes={"tier": "gold", "score": 7}
    )
    assert result.attributes_updated == 2


@pytest.mark.asyncio
async def test_empty_plan_makes_no_calls(sync_engine, messaging_client):
    result = await sync_engine.sync(TENANT_ID, CONVERSATION_ID, ExecutionPlan())

    assert result.model_dump() == {
        "messages_sent": 0,
        "labels_updated": 0,
        "attributes_updated": 0,
        "errors": [],
    }
    messaging_client.add_labels.assert_not_awaited()
    messaging_client.update_conversation.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_tenant_raises(sync_engine, messaging_client):
    with pytest.raises(TenantNotFoundError):
        await sync_engine.sync("missing", CONVERSATION_ID, message_plan())
    messaging_client.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_client_is_created_once_per_tenant(sync_engine, client_factory):
    await sync_engine.get_client(TENANT_ID)
    await sync_engine.get_client(TENANT_ID)
    assert client_factory.call_count == 1


@pytest.mark.asyncio
async def test_concurrent_first_use_keeps_one_client(config_store, fast_retry):
    created = []

    def factory(config):
        client = MagicMock()
        client.aclose = AsyncMock()
        created.append(client)
        return client

    engine = SyncEngine(config_store, client_factory=factory, retry_options=fast_retry)
    clients = await asyncio.gather(*(engine.get_client(TENANT_ID) for _ in range(3)))

    assert all(c is clients[0] for c in clients)
    for extra in created:
        if extra is not clients[0]:
            extra.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispose_closes_pooled_clients(sync_engine, messaging_client, client_factory):
    await sync_engine.get_client(TENANT_ID)
    await sync_engine.dispose()

    messaging_client.aclose.assert_awaited_once()
    await sync_engine.get_client(TENANT_ID)
    assert client_factory.call_count == 2


@pytest.mark.asyncio
async def test_execute_actions_in_order(sync_engine, messaging_client):
    calls = []
    messaging_client.send_message.side_effect = lambda *a, **k: calls.append("send")
    messaging_client.add_labels.side_effect = lambda *a, **k: calls.append("label")
    messaging_client.update_conversation.side_effect = lambda *a, **k: calls.append(
        "update"
    )
    actions = [
        PolicyAction(type="add_label", params={"label": "vip"}),
        PolicyAction(type="send_message", params={"content": "Hi"}),
        PolicyAction(type="assign_agent", params={"agent_id": "123"}),
        PolicyAction(type="update_attributes", params={"attributes": {"tier": "gold"}}),
    ]

    await sync_engine.execute_actions(TENANT_ID, CONVERSATION_ID, actions)

    assert calls == ["label", "send", "update", "update"]
    messaging_client.add_labels.assert_awaited_once_with(CONVERSATION_ID, ["vip"])
    messaging_client.send_message.assert_awaited_once_with(CONVERSATION_ID, "Hi")
    messaging_client.update_conversation.assert_any_await(
        CONVERSATION_ID, assignee_id=123
    )
    messaging_client.update_conversation.assert_any_await(
        CONVERSATION_ID, custom_attributes={"tier": "gold"}
    )


@pytest.mark.asyncio
async def test_execute_actions_skips_unknown_and_missing_params(
    sync_engine, messaging_client
):
    actions = [
        PolicyAction(type="teleport", params={}),
        PolicyAction(type="add_label", params={}),
        PolicyAction(type="assign_agent", params={"agent_id": ""}),
        PolicyAction(type="update_attributes", params={}),
        PolicyAction(type="update_contact", params={"email": "a@b.c"}),
        PolicyAction(type="send_message", params={}),
    ]

    await sync_engine.execute_actions(TENANT_ID, CONVERSATION_ID, actions)

    messaging_client.add_labels.assert_not_awaited()
    messaging_client.update_conversation.assert_not_awaited()
    messaging_client.send_message.assert_awaited_once_with(CONVERSATION_ID, "")


@pytest.mark.asyncio
async def test_failing_action_does_not_stop_the_rest(sync_engine, messaging_client):
    messaging_client.add_labels.side_effect = RuntimeError("boom")
    actions = [
        PolicyAction(type="add_label", params={"label": "vip"}),
        PolicyAction(type="update_attributes", params={"attributes": "not-a-dict"}),
        PolicyAction(type="send_message", params={"content": "still sent"}),
    ]

    await sync_engine.execute_actions(TENANT_ID, CONVERSATION_ID, actions)

    assert messaging_client.add_labels.await_count == 3
    messaging_client.send_message.assert_awaited_once_with(CONVERSATION_ID, "still sent")


@pytest.mark.asyncio
async def test_trigger_webhook_posts_payload(config_store, client_factory, fast_retry):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(200)

    webhook_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    engine = SyncEngine(
        config_store,
        client_factory=client_factory,
        retry_options=fast_retry,
        webhook_client=webhook_client,
    )
    action = PolicyAction(
        type="trigger_webhook",
        params={"url": "https://hooks.example.com/in", "payload": {"event": "vip"}},
    )

    await engine.execute_actions(TENANT_ID, CONVERSATION_ID, [action])

    assert len(received) == 1
    assert str(received[0].url) == "https://hooks.example.com/in"
    assert received[0].method == "POST"
    await engine.dispose()


@pytest.mark.asyncio
async def test_register_handler_replaces_default(sync_engine, messaging_client):
    handler = AsyncMock()
    sync_engine.register_handler(ActionType.UPDATE_CONTACT, handler)
    action = PolicyAction(type="update_contact", params={"email": "a@b.c"})

    await sync_engine.execute_actions(TENANT_ID, CONVERSATION_ID, [action])

    handler.assert_awaited_once_with(messaging_client, CONVERSATION_ID, action)
    assert sync_engine.handled_action_types() == set(ActionType)


def test_build_messaging_client_uses_tenant_credentials(tenant_config):
    client = build_messaging_client(tenant_config)
    assert isinstance(client, ChatwootClient)
    assert client._account_id == 123


@pytest.mark.asyncio
async def test_concurrent_sync_reports_failed_in_flight_send(sync_engine, messaging_client):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_failing_send(*args, **kwargs):
        started.set()
        await release.wait()
        raise RuntimeError("down")

    messaging_client.send_message.side_effect = slow_failing_send

    first = asyncio.create_task(sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan()))
    await started.wait()
    second = asyncio.create_task(sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan()))
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(first, second)

    for result in results:
        assert result.messages_sent == 0
        assert result.errors == ["Failed to send message 'welcome': down"]
    assert not sync_engine.is_processed(TENANT_ID, CONVERSATION_ID, "welcome")


@pytest.mark.asyncio
async def test_concurrent_sync_sends_once_when_in_flight_send_succeeds(
    sync_engine, messaging_client
):
    release = asyncio.Event()

    async def slow_send(*args, **kwargs):
        await release.wait()

    messaging_client.send_message.side_effect = slow_send

    first = asyncio.create_task(sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan()))
    second = asyncio.create_task(sync_engine.sync(TENANT_ID, CONVERSATION_ID, message_plan()))
    await asyncio.sleep(0)
    release.set()
    first_result, second_result = await asyncio.gather(first, second)

    assert first_result.messages_sent + second_result.messages_sent == 1
    assert first_result.errors == second_result.errors == []
    assert messaging_client.send_message.await_count == 1


@pytest.mark.asyncio
async def test_structured_message_values_are_sent_as_json(sync_engine, messaging_client):
    plan = ExecutionPlan.model_validate(
        {"persist": {"card": {"type": "message", "value": {"a": 1, "b": ["x"]}}}}
    )

    await sync_engine.sync(TENANT_ID, CONVERSATION_ID, plan)

    messaging_client.send_message.assert_awaited_once_with(
        CONVERSATION_ID, '{"a": 1, "b": ["x"]}'
    )


@pytest.mark.parametrize(
    "value,expected",
    [(None, ""), ("Hello", "Hello"), (42, "42"), ([1, "dos"], '[1, "dos"]')],
)
def test_message_content(value, expected):
    assert message_content(value) == expected
