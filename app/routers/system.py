from typing import Any

from fastapi import APIRouter

from app.config import get_settings

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> dict[str, Any]:
    """Liveness check."""
    return {"status": "ok", "service": get_settings().app_name}


@router.get("/system/settings")
def get_system_settings() -> dict[str, Any]:
    """Return non-sensitive configuration for troubleshooting."""
    s = get_settings()
    return {
        "app": {
            "name": s.app_name,
            "environment": s.environment,
            "log_level": s.log_level,
            "port": s.port,
        },
        "event_store_backend": s.event_store_backend,
        "retry": {
            "max_attempts": s.retry_max_attempts,
            "delay_ms": s.retry_delay_ms,
            "backoff_multiplier": s.retry_backoff_multiplier,
            "max_delay_ms": s.retry_max_delay_ms,
        },
        "default_tenant": s.tenant_id,
    }
