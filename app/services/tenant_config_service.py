"""
In-process tenant configuration store.

Bootstraps the default tenant from settings (CHATWOOT_*, TENANT_*) and,
when TENANT_POLICIES_FILE is set, its policy list from a JSON file.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from app.config import Settings, get_settings
from app.core.errors import TenantNotFoundError
from app.infra.logging_config import get_logger
from app.schemas.policy import Policy
from app.schemas.tenant import MessagingCredentials, TenantConfig

logger = get_logger("tenant_config")


def load_policies_file(path: str) -> List[Policy]:
    """Read a JSON array of policy documents."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Policies file must contain a JSON array: {path}")
    return [Policy.model_validate(item) for item in raw]


def default_tenant_from_settings(settings: Settings) -> TenantConfig:
    policies: List[Policy] = []
    if settings.tenant_policies_file:
        policies = load_policies_file(settings.tenant_policies_file)
    return TenantConfig(
        id=settings.tenant_id,
        name=settings.tenant_name,
        messaging=MessagingCredentials(
            api_url=settings.chatwoot_base_url,
            api_token=settings.chatwoot_api_token,
            account_id=settings.chatwoot_account_id,
        ),
        policies=policies,
    )


class TenantConfigStore:
    """Tenant id -> TenantConfig. Lookups of unknown tenants raise TenantNotFoundError."""

    def __init__(
        self,
        configs: Optional[List[TenantConfig]] = None,
        load_default: bool = False,
    ) -> None:
        self._configs: Dict[str, TenantConfig] = {}
        if load_default:
            self.set(default_tenant_from_settings(get_settings()))
        for config in configs or []:
            self.set(config)

    async def get(self, tenant_id: str) -> TenantConfig:
        config = self._configs.get(tenant_id)
        if config is None:
            raise TenantNotFoundError(tenant_id)
        return config

    def set(self, config: TenantConfig) -> None:
        self._configs[config.id] = config
        logger.info(
            "Tenant configured: tenant_id=%s policies=%s",
            config.id,
            len(config.policies),
        )

    def list(self) -> List[TenantConfig]:
        return list(self._configs.values())
