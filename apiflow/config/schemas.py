"""
Configuration Schemas for apiflow.

Pydantic models for engine bounds, tenant pool sizing and the
gateway service settings.

Every resource bound the engine enforces lives here so it can be
overridden per deployment. Field constraints cap each bound so a
misconfigured environment cannot disable the limits entirely.

Security:
    The platform MongoDB URL uses SecretStr to prevent accidental logging
    of credentials. Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class EngineSettings(BaseModel):
    """
    Bounds applied to every flow execution.

    Defaults:
    - 5 s overall deadline
    - 1 s per expression, 2 s per transform script
    - 100 documents per read
    - delays between 0 and 10 s
    """

    model_config = ConfigDict(frozen=True)

    deadline_ms: int = Field(5000, ge=1, le=60000, description="Wall-clock budget for one flow")
    expression_timeout_ms: int = Field(1000, ge=1, le=2000, description="Budget per template expression")
    transform_timeout_ms: int = Field(2000, ge=1, le=2000, description="Budget per transform script")
    max_result_size: int = Field(100, ge=1, le=1000, description="Hard cap on documents per read")
    default_find_limit: int = Field(50, ge=1, description="Limit used when a find node sets none")
    delay_min_ms: int = Field(0, ge=0)
    delay_max_ms: int = Field(10000, ge=0, le=60000)
    default_delay_ms: int = Field(1000, ge=0)

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "EngineSettings":
        if self.delay_min_ms > self.delay_max_ms:
            raise ValueError("delay_min_ms must not exceed delay_max_ms")
        return self


class TenantPoolSettings(BaseModel):
    """
    Connection pool options for one tenant invocation.

    The pool lives for a single request, so it is kept small and
    every timeout is short.
    """

    model_config = ConfigDict(frozen=True)

    max_pool_size: int = Field(5, ge=1, le=50)
    server_selection_timeout_ms: int = Field(5000, ge=1, le=30000)
    connect_timeout_ms: int = Field(5000, ge=1, le=30000)
    socket_timeout_ms: int = Field(10000, ge=1, le=60000)
    default_database: str = Field("app", description="Database used when the URI names none")
    app_name: str = "apiflow"


class AppSettings(BaseModel):
    """
    Application settings model.

    Used for type-safe settings access by the gateway service.

    Security:
        The platform database URL uses SecretStr to prevent accidental logging.
        Access secret values with: settings.mongodb_url.get_secret_value()
    """

    # Service identity
    service_name: str = "apiflow"
    environment: str = "production"
    debug: bool = False

    # Platform MongoDB (project documents)
    mongodb_url: SecretStr = Field(..., description="Platform MongoDB connection URL")
    mongodb_database: str = "apiflow"
    project_cache_ttl: int = Field(60, ge=0, description="Seconds to cache project lookups")

    engine: EngineSettings = Field(default_factory=EngineSettings)
    tenant_pool: TenantPoolSettings = Field(default_factory=TenantPoolSettings)

    @property
    def expose_error_details(self) -> bool:
        """Error diagnostics are only returned outside production."""
        return self.debug or self.environment.lower() in {"development", "local", "test"}
