"""
Project lookup for the apiflow gateway.

The gateway resolves `/api/{username}/{project_slug}/...` to an active
project: its flow document and its tenant connection string. Project
documents are owned by the platform; this module only reads them.

Repositories:
- MongoProjectRepository: platform MongoDB via motor, with a TTL cache
- InMemoryProjectRepository: local development and tests

Security:
    Connection strings are held as SecretStr and reach the caller only
    through get_secret_value(). Decryption happens before this layer;
    a `uri_resolver` hook turns the stored field into the plain string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Protocol

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, SecretStr

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class ProjectRecord(BaseModel):
    """An active project as the gateway needs it."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    slug: str
    status: str = "active"
    flow: dict[str, Any] | None = None
    connection_uri: SecretStr = Field(default=SecretStr(""))

    @property
    def has_flow(self) -> bool:
        return bool(self.flow and self.flow.get("nodes"))


class ProjectRepository(Protocol):
    """Read-only access to users and projects."""

    async def find_user_id(self, username: str) -> str | None:
        ...

    async def find_active_project(self, user_id: str, slug: str) -> ProjectRecord | None:
        ...


# =============================================================================
# In-Memory Repository (for development and testing)
# =============================================================================


@dataclass
class InMemoryProjectRepository:
    """
    In-memory project repository.

    Not suitable for production use.
    """

    users: dict[str, str] = field(default_factory=dict)  # username -> user id
    projects: list[ProjectRecord] = field(default_factory=list)

    def add(self, username: str, project: ProjectRecord) -> None:
        self.users.setdefault(username, project.user_id)
        self.projects.append(project)

    async def find_user_id(self, username: str) -> str | None:
        return self.users.get(username)

    async def find_active_project(self, user_id: str, slug: str) -> ProjectRecord | None:
        for project in self.projects:
            if project.user_id == user_id and project.slug == slug and project.status == "active":
                return project
        return None


# =============================================================================
# MongoDB Repository
# =============================================================================


class TTLCache:
    """Simple TTL cache for lookups."""

    def __init__(self, ttl_seconds: int = 60):
        self._cache: dict[str, tuple[Any, datetime]] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key: str) -> Any | None:
        if key in self._cache:
            value, expires = self._cache[key]
            if datetime.now(UTC) < expires:
                return value
            del self._cache[key]
        return None

    def set(self, key: str, value: Any) -> None:
        if self._ttl.total_seconds() <= 0:
            return
        expires = datetime.now(UTC) + self._ttl
        self._cache[key] = (value, expires)

    def clear(self) -> None:
        self._cache.clear()


def _plain_uri(stored: Any) -> str:
    return stored if isinstance(stored, str) else ""


class MongoProjectRepository:
    """
    Project repository backed by the platform MongoDB.

    Collections:
    - users: {_id, username}
    - projects: {_id, userId, slug, status, flow, mongoUri}

    Caching:
    - Resolved users and projects are cached for `cache_ttl` seconds
    - Misses are not cached, so newly activated projects show up at once
    """

    def __init__(
        self,
        database: "AsyncIOMotorDatabase",
        *,
        cache_ttl: int = 60,
        uri_resolver: Callable[[Any], str] = _plain_uri,
    ):
        self._db = database
        self._users_cache = TTLCache(cache_ttl)
        self._projects_cache = TTLCache(cache_ttl)
        self._uri_resolver = uri_resolver

    async def find_user_id(self, username: str) -> str | None:
        cached = self._users_cache.get(username)
        if cached is not None:
            return cached

        doc = await self._db.users.find_one({"username": username}, {"_id": 1})
        if doc is None:
            return None

        user_id = str(doc["_id"])
        self._users_cache.set(username, user_id)
        return user_id

    async def find_active_project(self, user_id: str, slug: str) -> ProjectRecord | None:
        cache_key = f"{user_id}:{slug}"
        cached = self._projects_cache.get(cache_key)
        if cached is not None:
            return cached

        owner: Any = ObjectId(user_id) if ObjectId.is_valid(user_id) else user_id
        doc = await self._db.projects.find_one(
            {"userId": owner, "slug": slug, "status": "active"},
            {"_id": 1, "userId": 1, "slug": 1, "status": 1, "flow": 1, "mongoUri": 1},
        )
        if doc is None:
            return None

        project = ProjectRecord(
            id=str(doc["_id"]),
            user_id=str(doc["userId"]),
            slug=doc["slug"],
            status=doc.get("status", "active"),
            flow=doc.get("flow"),
            connection_uri=SecretStr(self._uri_resolver(doc.get("mongoUri"))),
        )
        self._projects_cache.set(cache_key, project)
        logger.debug(f"Loaded project {project.id} ({slug}) for user {user_id}")
        return project

    def clear_cache(self) -> None:
        self._users_cache.clear()
        self._projects_cache.clear()
