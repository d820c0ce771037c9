"""
Sync API: push execution plans and action lists to the messaging platform.

Partial failures are reported inside the result; an unknown tenant is a 404.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.routers.utils.dependencies import get_sync_engine
from app.schemas.sync import ExecuteActionsRequest, SyncRequest
from app.services.sync_engine import SyncEngine

router = APIRouter(tags=["sync"])


@router.post("/sync", response_model=dict[str, Any])
async def sync_execution_plan(
    body: SyncRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> dict[str, Any]:
    """Apply an execution plan to a conversation. Return {"data": sync_result}."""
    result = await engine.sync(body.tenant_id, body.conversation_id, body.execution_plan)
    return {"data": result.model_dump()}


@router.post("/actions", response_model=dict[str, Any])
async def execute_actions(
    body: ExecuteActionsRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> dict[str, Any]:
    """Run a policy action list against a conversation, in order."""
    await engine.execute_actions(body.tenant_id, body.conversation_id, body.actions)
    return {"data": {"accepted": len(body.actions)}}


@router.delete("/sync/cache", status_code=204)
async def clear_sync_cache(
    engine: SyncEngine = Depends(get_sync_engine),
) -> None:
    """Forget every sent message key."""
    engine.clear_cache()
