"""
Node kinds for apiflow documents.

The kind set is closed. Anything the editor emits that is not listed
here resolves to NodeKind.UNSUPPORTED, which the engine records as a
warning and steps over.
"""

from __future__ import annotations

from enum import Enum


class NodeKind(str, Enum):
    """Every node type the engine knows how to execute."""

    HTTP_METHOD = "httpMethod"

    # Tenant data access
    MONGO_FIND = "mongoFind"
    MONGO_INSERT = "mongoInsert"
    MONGO_UPDATE = "mongoUpdate"
    MONGO_DELETE = "mongoDelete"
    DATABASE = "dbNode"

    # Control flow
    CONDITION = "condition"
    TRY_CATCH = "tryCatch"
    RESPONSE = "response"

    # Values and effects
    TRANSFORM = "transform"
    ASSIGN = "assign"
    LOGGING = "logging"
    DELAY = "delay"

    UNSUPPORTED = "unsupported"

    @classmethod
    def from_type(cls, node_type: str | None) -> "NodeKind":
        """Resolve an editor type string, falling back to UNSUPPORTED."""
        if not node_type:
            return cls.UNSUPPORTED
        if node_type in _ALIASES:
            return _ALIASES[node_type]
        try:
            kind = cls(node_type)
        except ValueError:
            return cls.UNSUPPORTED
        return kind

    @property
    def is_branching(self) -> bool:
        return self in BRANCH_HANDLES

    @property
    def handles(self) -> tuple[str, ...]:
        """Source handles a branching kind routes through."""
        return BRANCH_HANDLES.get(self, ())


_ALIASES: dict[str, NodeKind] = {
    "dataFind": NodeKind.MONGO_FIND,
    "dataInsert": NodeKind.MONGO_INSERT,
    "dataUpdate": NodeKind.MONGO_UPDATE,
    "dataDelete": NodeKind.MONGO_DELETE,
}

BRANCH_HANDLES: dict[NodeKind, tuple[str, str]] = {
    NodeKind.CONDITION: ("if", "else"),
    NodeKind.TRY_CATCH: ("try", "catch"),
}

DATA_KINDS = frozenset({
    NodeKind.MONGO_FIND,
    NodeKind.MONGO_INSERT,
    NodeKind.MONGO_UPDATE,
    NodeKind.MONGO_DELETE,
    NodeKind.DATABASE,
})
