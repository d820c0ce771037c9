from app.services.event_pipeline import EventPipeline
from app.services.event_store import InMemoryEventStore, SqlEventStore
from app.services.sync_engine import SyncEngine
from app.services.tenant_config_service import TenantConfigStore

__all__ = [
    "EventPipeline",
    "InMemoryEventStore",
    "SqlEventStore",
    "SyncEngine",
    "TenantConfigStore",
]
