"""Per-tenant configuration as supplied by the configuration store."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.schemas.policy import Policy


class MessagingCredentials(BaseModel):
    """Credentials for the tenant's messaging platform account."""

    api_url: str
    api_token: str
    account_id: int


class TenantConfig(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""
    messaging: MessagingCredentials
    policies: list[Policy] = Field(default_factory=list)
