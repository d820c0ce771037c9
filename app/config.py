import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, model_validator
from typing import Optional
from pydantic_settings import BaseSettings

DEFAULT_DATABASE_URL = "sqlite:///./automation_events.db"
DEFAULT_TEST_DATABASE_URL = "sqlite://"

# Project root (parent of app/) - used so .env is found regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Explicitly load .env into os.environ so it works in tests and subprocesses
load_dotenv(_PROJECT_ROOT / ".env")


class Settings(BaseSettings):
    app_name: str = "conversation-automation"
    database_url: Optional[str] = None  # Will be set dynamically
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", json_schema_extra={"env": "LOG_LEVEL"})
    port: int = Field(default=8000, json_schema_extra={"env": "PORT"})

    # Event record store: "memory" or "sql"
    event_store_backend: str = Field(
        default="memory", json_schema_extra={"env": "EVENT_STORE_BACKEND"}
    )

    # Retry / backoff for every outbound call
    retry_max_attempts: int = Field(
        default=3, ge=1, json_schema_extra={"env": "RETRY_MAX_ATTEMPTS"}
    )
    retry_delay_ms: int = Field(
        default=1000, ge=0, json_schema_extra={"env": "RETRY_DELAY_MS"}
    )
    retry_backoff_multiplier: float = Field(
        default=2.0, ge=1.0, json_schema_extra={"env": "RETRY_BACKOFF_MULTIPLIER"}
    )
    retry_max_delay_ms: int = Field(
        default=10000, ge=0, json_schema_extra={"env": "RETRY_MAX_DELAY_MS"}
    )

    # Messaging platform (Chatwoot)
    messaging_timeout_seconds: float = Field(
        default=30.0, json_schema_extra={"env": "MESSAGING_TIMEOUT_SECONDS"}
    )

    # Default tenant, bootstrapped into the tenant store at startup
    tenant_id: str = Field(default="default", json_schema_extra={"env": "TENANT_ID"})
    tenant_name: str = Field(
        default="Default Tenant", json_schema_extra={"env": "TENANT_NAME"}
    )
    chatwoot_base_url: str = Field(
        default="https://app.chatwoot.com",
        json_schema_extra={"env": "CHATWOOT_BASE_URL"},
    )
    chatwoot_api_token: str = Field(
        default="", json_schema_extra={"env": "CHATWOOT_API_TOKEN"}
    )
    chatwoot_account_id: int = Field(
        default=0, json_schema_extra={"env": "CHATWOOT_ACCOUNT_ID"}
    )
    tenant_policies_file: Optional[str] = Field(
        default=None, json_schema_extra={"env": "TENANT_POLICIES_FILE"}
    )

    @model_validator(mode="before")
    def set_database_url(cls, values):
        """Set the database_url dynamically based on the environment field."""
        environment = values.get("environment", os.getenv("ENV", "development"))
        if environment.lower() == "test":
            values["database_url"] = os.getenv(
                "TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL
            )
        else:
            values["database_url"] = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

        return values

    class ConfigDict:
        env_file = str(_PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        extra = "allow"  # Allow extra environment variables


def get_settings() -> Settings:
    """Get application settings with required environment variables."""
    return Settings()
