"""
Tenant data store access for apiflow.

Data nodes talk to the tenant database only through the
TenantDataStore protocol, so the engine can run against:
- MotorDataStore: the tenant's MongoDB (production)
- InMemoryDataStore: local development and tests

Results come back as plain Python values (ObjectIds become strings) so
they can be bound into variables and serialized into responses.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase


@dataclass(frozen=True)
class UpdateSummary:
    matched_count: int
    modified_count: int


class TenantDataStore(Protocol):
    """
    Protocol for the operations data nodes perform.

    Every method is one store round-trip. Limits are applied by the
    caller before the call is made.
    """

    async def find(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
        limit: int,
    ) -> list[dict[str, Any]]:
        ...

    async def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        ...

    async def insert_one(self, collection: str, document: dict[str, Any]) -> Any:
        """Insert a document and return its id."""
        ...

    async def update(
        self,
        collection: str,
        filter: dict[str, Any],
        changes: dict[str, Any],
        *,
        many: bool,
    ) -> UpdateSummary:
        """Set `changes` on matching documents."""
        ...

    async def delete(self, collection: str, filter: dict[str, Any], *, many: bool) -> int:
        """Delete matching documents and return how many were removed."""
        ...


# =============================================================================
# MongoDB (motor)
# =============================================================================


def to_plain(value: Any) -> Any:
    """Convert BSON-specific values into JSON-friendly Python values."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def _coerce_filter(filter: dict[str, Any] | None) -> dict[str, Any]:
    """Turn a string `_id` into an ObjectId when it is one."""
    coerced = dict(filter or {})
    object_id = coerced.get("_id")
    if isinstance(object_id, str) and ObjectId.is_valid(object_id):
        coerced["_id"] = ObjectId(object_id)
    return coerced


class MotorDataStore:
    """
    TenantDataStore backed by one motor database handle.

    The handle belongs to a client opened for a single invocation by
    TenantConnectionManager; this class never opens or closes it.
    """

    def __init__(self, database: "AsyncIOMotorDatabase"):
        self._db = database

    @property
    def database_name(self) -> str:
        return self._db.name

    async def find(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
        limit: int,
    ) -> list[dict[str, Any]]:
        cursor = self._db[collection].find(_coerce_filter(query), projection or None).limit(limit)
        documents = await cursor.to_list(length=limit)
        return [to_plain(doc) for doc in documents]

    async def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        document = await self._db[collection].find_one(_coerce_filter(query), projection or None)
        return to_plain(document) if document is not None else None

    async def insert_one(self, collection: str, document: dict[str, Any]) -> Any:
        # insert_one adds _id to the mapping it is given
        result = await self._db[collection].insert_one(dict(document))
        return to_plain(result.inserted_id)

    async def update(
        self,
        collection: str,
        filter: dict[str, Any],
        changes: dict[str, Any],
        *,
        many: bool,
    ) -> UpdateSummary:
        target = self._db[collection]
        operation = target.update_many if many else target.update_one
        result = await operation(_coerce_filter(filter), {"$set": changes})
        return UpdateSummary(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    async def delete(self, collection: str, filter: dict[str, Any], *, many: bool) -> int:
        target = self._db[collection]
        operation = target.delete_many if many else target.delete_one
        result = await operation(_coerce_filter(filter))
        return result.deleted_count


# =============================================================================
# In-Memory Store (for development and testing)
# =============================================================================


def _lookup(document: dict[str, Any], dotted: str) -> tuple[bool, Any]:
    current: Any = document
    for part in dotted.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return False, None
    return True, current


def _matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    """Equality matching on (dotted) field paths."""
    for key, expected in query.items():
        found, actual = _lookup(document, key)
        if not found or actual != expected:
            return False
    return True


def _project(document: dict[str, Any], projection: dict[str, Any] | None) -> dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    included = {k for k, v in projection.items() if v and k != "_id"}
    if included:
        projected = {k: copy.deepcopy(document[k]) for k in included if k in document}
        if projection.get("_id", 1) and "_id" in document:
            projected["_id"] = document["_id"]
        return projected
    return {k: copy.deepcopy(v) for k, v in document.items() if k not in projection}


@dataclass
class InMemoryDataStore:
    """
    In-memory tenant store.

    Not suitable for production use. Supports equality queries, simple
    projections, and unique fields per collection so duplicate-key
    failures can be reproduced without a server.
    """

    collections: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    unique_fields: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def _collection(self, name: str) -> list[dict[str, Any]]:
        return self.collections.setdefault(name, [])

    async def find(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
        limit: int,
    ) -> list[dict[str, Any]]:
        matches = [doc for doc in self._collection(collection) if _matches(doc, query or {})]
        return [_project(doc, projection) for doc in matches[:limit]]

    async def find_one(
        self,
        collection: str,
        query: dict[str, Any],
        *,
        projection: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        found = await self.find(collection, query, projection=projection, limit=1)
        return found[0] if found else None

    async def insert_one(self, collection: str, document: dict[str, Any]) -> Any:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", str(ObjectId()))
        existing = self._collection(collection)
        for unique in ("_id", *self.unique_fields.get(collection, ())):
            if unique in stored and any(doc.get(unique) == stored[unique] for doc in existing):
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {collection} "
                    f"dup key: {{ {unique}: {stored[unique]!r} }}"
                )
        existing.append(stored)
        return stored["_id"]

    async def update(
        self,
        collection: str,
        filter: dict[str, Any],
        changes: dict[str, Any],
        *,
        many: bool,
    ) -> UpdateSummary:
        matched = modified = 0
        for doc in self._collection(collection):
            if not _matches(doc, filter or {}):
                continue
            matched += 1
            if any(doc.get(k) != v for k, v in changes.items()):
                doc.update(copy.deepcopy(changes))
                modified += 1
            if not many:
                break
        return UpdateSummary(matched_count=matched, modified_count=modified)

    async def delete(self, collection: str, filter: dict[str, Any], *, many: bool) -> int:
        documents = self._collection(collection)
        kept: list[dict[str, Any]] = []
        deleted = 0
        for doc in documents:
            if _matches(doc, filter or {}) and (many or deleted == 0):
                deleted += 1
            else:
                kept.append(doc)
        documents[:] = kept
        return deleted
