"""
Data node executors for apiflow.

Data nodes read and write the tenant's store through the
TenantDataStore protocol. Every node:

1. Resolves its action (find, insertOne, updateMany, ...)
2. Validates the target collection name
3. Evaluates its query/document/filter/update templates
4. Runs one store call inside the execution deadline
5. Binds a plain result under variables[node.id]

Driver failures are wrapped in DataAccessError so the message names the
action and collection, e.g. `Insert failed in "users": E11000 ...`.
Writes are not rolled back if a later node fails.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar

from apiflow.flow import NodeKind

from ..errors import ConfigurationError, DataAccessError, FlowError
from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode
    from apiflow.tenant.store import TenantDataStore

    from ..context import ExecutionContext

logger = logging.getLogger(__name__)

COLLECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
DEFAULT_COLLECTION = "items"

# action -> (operation label, handler method)
_ACTIONS: dict[str, tuple[str, str]] = {
    "find": ("Find", "_find"),
    "findOne": ("Find", "_find_one"),
    "insertOne": ("Insert", "_insert"),
    "updateOne": ("Update", "_update"),
    "updateMany": ("Update", "_update"),
    "deleteOne": ("Delete", "_delete"),
    "deleteMany": ("Delete", "_delete"),
}


def validate_collection(name: Any) -> str:
    """
    Check a collection identifier before it reaches the store.

    Raises:
        ConfigurationError: (400) for anything outside [A-Za-z0-9_-]
    """
    if not isinstance(name, str) or not COLLECTION_NAME_RE.fullmatch(name):
        raise ConfigurationError(f"Invalid collection name: {name}", status=400)
    return name


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_mapping(value: Any, field: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{field} must evaluate to an object, got {type(value).__name__}")
    return value


class DataNodeExecutor(NodeExecutor):
    """
    Shared behavior of every data node.

    Subclasses choose the default action and which actions they accept.
    """

    default_action: ClassVar[str]
    actions: ClassVar[frozenset[str]]

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        config = node.config
        action = str(config.get("action") or self.default_action)
        if action not in self.actions:
            raise ConfigurationError(
                f"Unsupported action for {self.name} node {node.id}: {action}",
                node_id=node.id,
            )

        label, handler_name = _ACTIONS[action]
        collection = validate_collection(config.get("collection", DEFAULT_COLLECTION))

        store = ctx.store
        if store is None:
            raise DataAccessError(
                label, collection, "No database connection available", node_id=node.id
            )

        handler = getattr(self, handler_name)
        try:
            result = await ctx.deadline.run(handler(store, collection, config, ctx, action))
        except FlowError:
            raise
        except Exception as exc:
            logger.warning(f"{label} on collection '{collection}' failed: {exc}")
            raise DataAccessError(label, collection, str(exc), node_id=node.id) from exc

        ctx.bind_result(node.id, result)
        return NodeOutcome.proceed()

    # Limits -----------------------------------------------------------------

    def resolve_limit(self, raw: Any) -> int:
        """
        Clamp a requested limit to the configured cap.

        Missing limits use default_find_limit; non-numeric or non-positive
        limits use the cap itself.
        """
        cap = self.settings.max_result_size
        if raw is None:
            raw = self.settings.default_find_limit
        try:
            limit = int(raw)
        except (TypeError, ValueError):
            return cap
        if limit <= 0:
            return cap
        return min(limit, cap)

    # Operations -------------------------------------------------------------

    async def _find(
        self,
        store: TenantDataStore,
        collection: str,
        config: dict[str, Any],
        ctx: ExecutionContext,
        action: str,
    ) -> list[dict[str, Any]]:
        query = _as_mapping(self.evaluator.evaluate(config.get("query") or {}, ctx), "query")
        projection = _as_mapping(
            self.evaluator.evaluate(config.get("projection") or {}, ctx), "projection"
        )
        limit = self.resolve_limit(self.evaluator.evaluate(config.get("limit"), ctx))
        documents = await store.find(collection, query, projection=projection or None, limit=limit)
        logger.debug(f"Find on '{collection}' returned {len(documents)} document(s)")
        return documents

    async def _find_one(
        self,
        store: TenantDataStore,
        collection: str,
        config: dict[str, Any],
        ctx: ExecutionContext,
        action: str,
    ) -> dict[str, Any] | None:
        query = _as_mapping(self.evaluator.evaluate(config.get("query") or {}, ctx), "query")
        projection = _as_mapping(
            self.evaluator.evaluate(config.get("projection") or {}, ctx), "projection"
        )
        return await store.find_one(collection, query, projection=projection or None)

    async def _insert(
        self,
        store: TenantDataStore,
        collection: str,
        config: dict[str, Any],
        ctx: ExecutionContext,
        action: str,
    ) -> dict[str, Any]:
        document = _as_mapping(
            self.evaluator.evaluate(config.get("document") or {}, ctx), "document"
        )
        now = _utc_now()
        inserted_id = await store.insert_one(
            collection, {**document, "createdAt": now, "updatedAt": now}
        )
        return {"insertedId": inserted_id}

    async def _update(
        self,
        store: TenantDataStore,
        collection: str,
        config: dict[str, Any],
        ctx: ExecutionContext,
        action: str,
    ) -> dict[str, Any]:
        filter = _as_mapping(self.evaluator.evaluate(config.get("filter") or {}, ctx), "filter")
        changes = _as_mapping(self.evaluator.evaluate(config.get("update") or {}, ctx), "update")
        summary = await store.update(
            collection,
            filter,
            {**changes, "updatedAt": _utc_now()},
            many=action == "updateMany",
        )
        return {"matchedCount": summary.matched_count, "modifiedCount": summary.modified_count}

    async def _delete(
        self,
        store: TenantDataStore,
        collection: str,
        config: dict[str, Any],
        ctx: ExecutionContext,
        action: str,
    ) -> dict[str, Any]:
        filter = _as_mapping(self.evaluator.evaluate(config.get("filter") or {}, ctx), "filter")
        deleted = await store.delete(collection, filter, many=action == "deleteMany")
        return {"deletedCount": deleted}


class MongoFindExecutor(DataNodeExecutor):
    kind = NodeKind.MONGO_FIND
    default_action = "find"
    actions = frozenset({"find", "findOne"})


class MongoInsertExecutor(DataNodeExecutor):
    kind = NodeKind.MONGO_INSERT
    default_action = "insertOne"
    actions = frozenset({"insertOne"})


class MongoUpdateExecutor(DataNodeExecutor):
    kind = NodeKind.MONGO_UPDATE
    default_action = "updateMany"
    actions = frozenset({"updateOne", "updateMany"})


class MongoDeleteExecutor(DataNodeExecutor):
    kind = NodeKind.MONGO_DELETE
    default_action = "deleteMany"
    actions = frozenset({"deleteOne", "deleteMany"})


class DatabaseExecutor(DataNodeExecutor):
    """Generic data node: the action picks the operation."""

    kind = NodeKind.DATABASE
    default_action = "find"
    actions = frozenset(_ACTIONS)
