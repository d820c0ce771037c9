"""Error taxonomy for the automation core."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "ERR_VALIDATION"
    INVALID_TENANT = "ERR_INVALID_TENANT"
    MISSING_FIELD = "ERR_MISSING_FIELD"
    MESSAGING_API_FAILED = "ERR_MESSAGING_API"
    EVENT_STORE_FAILED = "ERR_EVENT_STORE"
    POLICY_EXECUTION_FAILED = "ERR_POLICY_EXEC"
    INTERNAL_ERROR = "ERR_INTERNAL"


class AutomationError(Exception):
    """Base error carrying a machine-readable code and optional details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class TenantNotFoundError(AutomationError):
    """Tenant configuration lookup failed; nothing was attempted."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            ErrorCode.INVALID_TENANT,
            f"Tenant not found: {tenant_id}",
            {"tenant_id": tenant_id},
        )
        self.tenant_id = tenant_id


class MessagingPlatformError(AutomationError):
    """Transport error, non-2xx response or unreadable body from the platform."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        merged = dict(details or {})
        if status_code is not None:
            merged["status"] = status_code
        super().__init__(ErrorCode.MESSAGING_API_FAILED, message, merged)
        self.status_code = status_code


class ConditionParseError(AutomationError):
    """A policy condition document could not be turned into a condition tree."""

    def __init__(self, message: str, raw: Any = None) -> None:
        super().__init__(
            ErrorCode.VALIDATION_ERROR,
            message,
            {"condition": repr(raw)[:200]} if raw is not None else None,
        )
