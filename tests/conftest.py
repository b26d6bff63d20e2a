"""
Pytest configuration and fixtures for apiflow tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from apiflow.engine import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from apiflow.config import EngineSettings  # noqa: E402
from apiflow.engine import ExecutionContext, ExecutionMetrics, FlowEngine  # noqa: E402
from apiflow.engine.governor import Deadline  # noqa: E402
from apiflow.flow import FlowDocument, RequestContext  # noqa: E402
from apiflow.tenant import InMemoryDataStore  # noqa: E402


def build_node(node_id: str, node_type: str, **config):
    """Node in the editor's format (type "custom", kind in data.nodeType)."""
    return {
        "id": node_id,
        "type": "custom",
        "data": {"nodeType": node_type, "label": node_id, "config": config},
    }


def build_edge(source: str, target: str, handle: str | None = None):
    edge = {"id": f"{source}->{target}", "source": source, "target": target}
    if handle is not None:
        edge["sourceHandle"] = handle
    return edge


@pytest.fixture
def node():
    """Factory for editor-format nodes."""
    return build_node


@pytest.fixture
def edge():
    """Factory for edges."""
    return build_edge


@pytest.fixture
def user_lookup_flow():
    """
    GET /users/:id -> find user -> condition(!result)
        if   -> 404
        else -> 200 with the document
    """
    return {
        "_id": "flow-users",
        "version": 3,
        "nodes": [
            build_node("entry", "httpMethod", method="GET", path="/users/:id"),
            build_node(
                "findUser",
                "mongoFind",
                collection="users",
                query={"_id": "{{ req.params.id }}"},
                limit=1,
            ),
            build_node("missing", "condition", condition="!result"),
            build_node("notFound", "response", statusCode=404, body={"error": "User not found"}),
            build_node("found", "response", statusCode=200, body="{{ result[0] }}"),
        ],
        "edges": [
            build_edge("entry", "findUser"),
            build_edge("findUser", "missing"),
            build_edge("missing", "notFound", "if"),
            build_edge("missing", "found", "else"),
        ],
    }


@pytest.fixture
def store():
    """In-memory tenant store with one user and a unique email index."""
    return InMemoryDataStore(
        collections={
            "users": [{"_id": "42", "name": "Ada", "email": "ada@example.com"}],
        },
        unique_fields={"users": ("email",)},
    )


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def metrics():
    return ExecutionMetrics()


@pytest.fixture
def engine(settings, metrics):
    return FlowEngine(settings, metrics=metrics)


@pytest.fixture
def debug_engine(settings, metrics):
    """Engine that attaches error details to failure bodies."""
    return FlowEngine(settings, metrics=metrics, expose_error_details=True)


@pytest.fixture
def make_context():
    """Factory for execution contexts outside a full engine run."""

    def _make(variables=None, request=None, store=None, budget_ms=5000):
        flow = FlowDocument.model_validate(
            {"id": "ctx-flow", "nodes": [build_node("entry", "httpMethod")]}
        )
        ctx = ExecutionContext.create(
            flow,
            RequestContext.coerce(request or {"method": "GET", "path": "/"}),
            Deadline(budget_ms=budget_ms),
            store,
        )
        ctx.variables.update(variables or {})
        return ctx

    return _make
