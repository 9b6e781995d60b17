"""
Shared configuration management for the Authorization Service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthorizationSettings(BaseSettings):
    """Authorization service configuration.

    Every field can be overridden through an ``AUTHZ_``-prefixed environment
    variable or a ``.env`` file, e.g. ``AUTHZ_DATABASE_URL``.
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Server
    service_name: str = Field(default="authorization")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8013)

    # Rule store
    database_url: str = Field(default="sqlite:///./authorization.db")
    rules_table: str = Field(default="authorization_rules")

    # Policy
    model_path: Optional[str] = Field(default=None, description="Matching model definition; bundled model when unset")
    policy_file: Optional[str] = Field(default=None, description="CSV rules loaded idempotently at startup")

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4317")
    enable_console_tracing: bool = Field(default=False)


def get_config(**overrides) -> AuthorizationSettings:
    """Get the service configuration."""
    return AuthorizationSettings(**overrides)
