"""
Dependency Injection for the apiflow gateway.

Provides singleton instances of the engine, the tenant flow runner, the
project repository and the request log sink. Route handlers receive
them through FastAPI's Depends, so tests can swap any of them with
app.dependency_overrides.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from apiflow.config import AppSettings, EngineSettings, TenantPoolSettings
from apiflow.engine import FlowEngine, LoggingRequestLogSink, RequestLogSink
from apiflow.runtime import TenantFlowRunner
from apiflow.tenant import TenantConnectionManager

from .projects import MongoProjectRepository, ProjectRepository

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return default if raw in (None, "") else int(raw)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    engine_defaults = EngineSettings()
    pool_defaults = TenantPoolSettings()
    return AppSettings(
        # Service
        service_name=os.getenv("APIFLOW_SERVICE_NAME", "apiflow"),
        environment=os.getenv("APIFLOW_ENVIRONMENT", "production"),
        debug=os.getenv("APIFLOW_DEBUG", "false").lower() == "true",
        # Platform MongoDB
        mongodb_url=os.getenv("APIFLOW_MONGODB_URL", "mongodb://localhost:27017"),
        mongodb_database=os.getenv("APIFLOW_MONGODB_DATABASE", "apiflow"),
        project_cache_ttl=_env_int("APIFLOW_PROJECT_CACHE_TTL", 60),
        # Engine bounds
        engine=EngineSettings(
            deadline_ms=_env_int("APIFLOW_DEADLINE_MS", engine_defaults.deadline_ms),
            expression_timeout_ms=_env_int(
                "APIFLOW_EXPRESSION_TIMEOUT_MS", engine_defaults.expression_timeout_ms
            ),
            transform_timeout_ms=_env_int(
                "APIFLOW_TRANSFORM_TIMEOUT_MS", engine_defaults.transform_timeout_ms
            ),
            max_result_size=_env_int("APIFLOW_MAX_RESULT_SIZE", engine_defaults.max_result_size),
            default_find_limit=_env_int(
                "APIFLOW_DEFAULT_FIND_LIMIT", engine_defaults.default_find_limit
            ),
            delay_min_ms=_env_int("APIFLOW_DELAY_MIN_MS", engine_defaults.delay_min_ms),
            delay_max_ms=_env_int("APIFLOW_DELAY_MAX_MS", engine_defaults.delay_max_ms),
        ),
        # Tenant connections
        tenant_pool=TenantPoolSettings(
            max_pool_size=_env_int("APIFLOW_TENANT_MAX_POOL_SIZE", pool_defaults.max_pool_size),
            server_selection_timeout_ms=_env_int(
                "APIFLOW_TENANT_SERVER_SELECTION_TIMEOUT_MS",
                pool_defaults.server_selection_timeout_ms,
            ),
            connect_timeout_ms=_env_int(
                "APIFLOW_TENANT_CONNECT_TIMEOUT_MS", pool_defaults.connect_timeout_ms
            ),
            socket_timeout_ms=_env_int(
                "APIFLOW_TENANT_SOCKET_TIMEOUT_MS", pool_defaults.socket_timeout_ms
            ),
            default_database=os.getenv(
                "APIFLOW_TENANT_DEFAULT_DATABASE", pool_defaults.default_database
            ),
        ),
    )


# Global instances (initialized on first access)
_engine: Optional[FlowEngine] = None
_runner: Optional[TenantFlowRunner] = None
_platform_client: Optional[AsyncIOMotorClient] = None
_project_repository: Optional[ProjectRepository] = None
_request_log_sink: Optional[RequestLogSink] = None


def get_engine() -> FlowEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = FlowEngine(
            settings.engine,
            expose_error_details=settings.expose_error_details,
        )
    return _engine


def get_runner() -> TenantFlowRunner:
    """
    Get the tenant flow runner.

    Creates the engine and connection manager on first call.
    """
    global _runner
    if _runner is None:
        settings = get_settings()
        _runner = TenantFlowRunner(
            engine=get_engine(),
            connections=TenantConnectionManager(settings.tenant_pool),
        )
    return _runner


def get_project_repository() -> ProjectRepository:
    """
    Get the project repository.

    Opens the platform MongoDB client on first call.
    """
    global _platform_client, _project_repository
    if _project_repository is None:
        settings = get_settings()
        _platform_client = AsyncIOMotorClient(settings.mongodb_url.get_secret_value())
        _project_repository = MongoProjectRepository(
            _platform_client[settings.mongodb_database],
            cache_ttl=settings.project_cache_ttl,
        )
        logger.info(f"Project repository using database '{settings.mongodb_database}'")
    return _project_repository


def get_request_log_sink() -> RequestLogSink:
    global _request_log_sink
    if _request_log_sink is None:
        _request_log_sink = LoggingRequestLogSink()
    return _request_log_sink


async def initialize_services() -> None:
    """
    Initialize all services on application startup.

    Called from FastAPI lifespan.
    """
    get_runner()
    get_project_repository()
    get_request_log_sink()


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan.
    """
    global _platform_client, _project_repository
    if _platform_client is not None:
        _platform_client.close()
        _platform_client = None
        _project_repository = None
