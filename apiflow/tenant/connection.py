"""
Tenant Connection Manager for apiflow.

Every flow invocation talks to the tenant's own MongoDB. The manager
opens a small, short-timeout motor client for that one invocation and
closes it on every exit path, so connections are never shared between
requests or tenants.

Security:
    The connection string arrives already decrypted. It is passed to the
    driver and nowhere else: it is never logged, stored, or included in
    error messages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from apiflow.config import TenantPoolSettings
from apiflow.engine.errors import TenantConnectionError

from .store import MotorDataStore

logger = logging.getLogger(__name__)


class TenantConnectionManager:
    """
    Scoped acquisition of tenant database connections.

    Usage:
        manager = TenantConnectionManager(TenantPoolSettings())
        async with manager.connect(connection_uri) as store:
            result = await engine.execute(flow, request, store)

    Args:
        settings: Pool size and timeouts applied to every client
        client_factory: Builds the driver client (AsyncIOMotorClient by default)
    """

    def __init__(
        self,
        settings: TenantPoolSettings | None = None,
        *,
        client_factory: Callable[..., Any] = AsyncIOMotorClient,
    ):
        self._settings = settings or TenantPoolSettings()
        self._client_factory = client_factory

    @property
    def settings(self) -> TenantPoolSettings:
        return self._settings

    def _client_options(self) -> dict[str, Any]:
        return {
            "maxPoolSize": self._settings.max_pool_size,
            "serverSelectionTimeoutMS": self._settings.server_selection_timeout_ms,
            "connectTimeoutMS": self._settings.connect_timeout_ms,
            "socketTimeoutMS": self._settings.socket_timeout_ms,
            "appname": self._settings.app_name,
        }

    @asynccontextmanager
    async def connect(self, uri: str) -> AsyncIterator[MotorDataStore]:
        """
        Open a client, verify it, and yield a store bound to its database.

        The database is the one named in the URI, or
        settings.default_database when the URI names none.

        Raises:
            TenantConnectionError: the URI is missing/invalid or the
                server cannot be reached
        """
        if not uri:
            raise TenantConnectionError("No database connection string configured")

        try:
            client = self._client_factory(uri, **self._client_options())
        except (PyMongoError, ValueError, TypeError) as exc:
            # Driver messages may echo parts of the URI
            raise TenantConnectionError(
                f"Invalid tenant connection string ({type(exc).__name__})"
            ) from None

        try:
            try:
                await client.admin.command("ping")
                database = client.get_default_database(default=self._settings.default_database)
            except PyMongoError as exc:
                raise TenantConnectionError(
                    f"Tenant database unreachable ({type(exc).__name__})"
                ) from None

            logger.debug(f"Tenant connection opened (database={database.name})")
            yield MotorDataStore(database)
        finally:
            client.close()
            logger.debug("Tenant connection closed")
