from __future__ import annotations

from typing import Optional

from app.config import get_settings
from app.db import db_manager
from app.services.event_pipeline import EventPipeline
from app.services.event_store import EventStore, InMemoryEventStore, SqlEventStore
from app.services.sync_engine import SyncEngine
from app.services.tenant_config_service import TenantConfigStore


def build_event_store() -> EventStore:
    """Pick the event record store from EVENT_STORE_BACKEND."""
    backend = get_settings().event_store_backend.lower()
    if backend == "sql":
        db_manager.create_all()
        return SqlEventStore(db_manager.session_factory)
    if backend != "memory":
        raise ValueError(f"Unknown event store backend: {backend}")
    return InMemoryEventStore()


class AppState:
    def __init__(
        self,
        config_store: Optional[TenantConfigStore] = None,
        event_store: Optional[EventStore] = None,
        sync_engine: Optional[SyncEngine] = None,
    ) -> None:
        self.config_store = config_store or TenantConfigStore(load_default=True)
        self.event_store = event_store or build_event_store()
        self.sync_engine = sync_engine or SyncEngine(self.config_store)
        self.pipeline = EventPipeline(
            self.config_store, self.event_store, sync_engine=self.sync_engine
        )

    async def shutdown(self) -> None:
        await self.pipeline.drain()
        await self.sync_engine.dispose()
