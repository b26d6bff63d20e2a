"""
apiflow - Request-time API flow execution

Interprets user-authored API flows (graphs of nodes and edges) for each
inbound request and runs them against the tenant's own database.

Core Concepts:
- FlowDocument: the graph saved by the visual editor
- FlowEngine: walks the graph and returns an HTTP-shaped result
- ExpressionEvaluator: sandboxed {{ }} templates and conditions
- TenantConnectionManager: per-request tenant database connection
- TenantFlowRunner: connection + execution + request logging

Usage:
    from apiflow import FlowEngine, InMemoryDataStore

    engine = FlowEngine()
    result = await engine.execute(flow, {"method": "GET", "path": "/users/42"}, store)
"""

__version__ = "0.1.0"

from apiflow.config import AppSettings, EngineSettings, TenantPoolSettings
from apiflow.engine import ExpressionEvaluator, FlowEngine
from apiflow.flow import ExecutionResult, FlowDocument, FlowEdge, FlowNode, NodeKind, RequestContext
from apiflow.runtime import TenantFlowRunner
from apiflow.tenant import InMemoryDataStore, MotorDataStore, TenantConnectionManager

__all__ = [
    "__version__",
    # Configuration
    "AppSettings",
    "EngineSettings",
    "TenantPoolSettings",
    # Flow documents
    "FlowDocument",
    "FlowEdge",
    "FlowNode",
    "NodeKind",
    "RequestContext",
    "ExecutionResult",
    # Execution
    "FlowEngine",
    "ExpressionEvaluator",
    "TenantFlowRunner",
    # Tenant data
    "InMemoryDataStore",
    "MotorDataStore",
    "TenantConnectionManager",
]
