"""
apiflow Flow Documents

Graph models, node kinds and the HTTP-shaped request/result types the
engine consumes and produces.
"""

from .document import FlowDocument, FlowEdge, FlowNode
from .http import JSON_CONTENT_TYPE, ExecutionResult, RequestContext, match_route
from .kinds import BRANCH_HANDLES, DATA_KINDS, NodeKind

__all__ = [
    "BRANCH_HANDLES",
    "DATA_KINDS",
    "ExecutionResult",
    "FlowDocument",
    "FlowEdge",
    "FlowNode",
    "JSON_CONTENT_TYPE",
    "NodeKind",
    "RequestContext",
    "match_route",
]
