"""Pydantic Settings configuration models.

Config hierarchy (lowest to highest priority):
1. Pydantic defaults (in code below)
2. .env file (loaded by Pydantic Settings)
3. Environment variables (e.g., CONCIERGE_NOTIFICATIONS__CHANNEL=webhook)
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"console", "json"})
VALID_CHANNELS = frozenset({"log", "webhook"})
VALID_ACTOR_ROLES = frozenset(
    {"customer", "shopper", "driver", "concierge", "admin", "sysadmin"}
)

DEFAULT_RETRYABLE_SIGNATURES = (
    "ECONNRESET",
    "ENOTFOUND",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "database is locked",
)


class WorkflowConfig(BaseModel):
    """Order workflow policy knobs."""

    retryable_error_signatures: list[str] = Field(
        default=list(DEFAULT_RETRYABLE_SIGNATURES),
    )
    accept_roles: list[str] = Field(default=["shopper", "admin", "sysadmin"])
    rollback_roles: list[str] = Field(default=["admin", "sysadmin", "concierge"])
    assign_roles: list[str] = Field(default=["admin", "sysadmin"])

    @field_validator("accept_roles", "rollback_roles", "assign_roles")
    @classmethod
    def validate_roles(cls, v: list[str]) -> list[str]:
        if len(v) == 0:
            raise ValueError("Role list must not be empty")
        for role in v:
            if role not in VALID_ACTOR_ROLES:
                raise ValueError(
                    f"role must be one of {sorted(VALID_ACTOR_ROLES)}, got {role}"
                )
        return v


class NotificationConfig(BaseModel):
    """Where workflow notifications are forwarded after being recorded."""

    channel: str = "log"
    webhook_url: str = ""
    webhook_timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    # Operations address copied on confirmations, substitutions and repairs.
    # Empty disables admin notifications.
    admin_recipient: str = ""

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_CHANNELS:
            raise ValueError(
                f"channel must be one of {sorted(VALID_CHANNELS)}, got {v}"
            )
        return v

    @model_validator(mode="after")
    def require_webhook_url(self) -> NotificationConfig:
        if self.channel == "webhook" and not self.webhook_url:
            raise ValueError("webhook_url is required when channel is 'webhook'")
        return self


class ActorConfig(BaseModel):
    """Identity a static bearer token resolves to."""

    user_id: str
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in VALID_ACTOR_ROLES:
            raise ValueError(
                f"role must be one of {sorted(VALID_ACTOR_ROLES)}, got {v}"
            )
        return v


class AuthConfig(BaseModel):
    """Static bearer tokens (token -> actor). Empty means nobody authenticates."""

    tokens: dict[str, ActorConfig] = Field(default_factory=dict)


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Env var examples:
        CONCIERGE_LOG_LEVEL=DEBUG
        CONCIERGE_DB_PATH=/var/lib/concierge/workflow.db
        CONCIERGE_NOTIFICATIONS__CHANNEL=webhook
        CONCIERGE_AUTH__TOKENS='{"tok-1": {"user_id": "U1", "role": "shopper"}}'
    """

    model_config = SettingsConfigDict(
        env_prefix="CONCIERGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    workflow: WorkflowConfig = WorkflowConfig()
    notifications: NotificationConfig = NotificationConfig()
    auth: AuthConfig = AuthConfig()
    db_path: str = "data/concierge.db"
    db_busy_timeout_ms: int = 5000

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {v}"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {v}"
            )
        return v

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy URL for the configured SQLite file."""
        return f"sqlite+aiosqlite:///{self.db_path}"
