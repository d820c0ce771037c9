from fastapi import Request

from app.core.app_state import AppState
from app.services.event_pipeline import EventPipeline
from app.services.sync_engine import SyncEngine


def get_app_state(request: Request) -> AppState:
    """FastAPI dependency returning the state built at startup."""
    return request.app.state.automation


def get_pipeline(request: Request) -> EventPipeline:
    return get_app_state(request).pipeline


def get_sync_engine(request: Request) -> SyncEngine:
    return get_app_state(request).sync_engine
