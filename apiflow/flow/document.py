"""
Flow Document models for apiflow.

A flow is the graph the visual editor saves for one API endpoint:
nodes carry a type and configuration, edges connect them and may name
the output handle they leave from ("if"/"else", "try"/"catch").

Documents are frozen once validated. The engine only ever reads them,
so the same instance can be shared by concurrent executions.
"""

from __future__ import annotations

from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)

from .kinds import NodeKind

# Keys the editor stores on node.data that are presentation, not configuration
_PRESENTATION_KEYS = frozenset({"config", "label", "color", "nodeType", "icon"})


class FlowNode(BaseModel):
    """
    One step of a flow.

    Editor documents use `type: "custom"` and keep the real kind in
    `data.nodeType`; older documents put the kind in `type` directly.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    type: str = "custom"
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def node_type(self) -> str:
        if self.type == "custom":
            return str(self.data.get("nodeType") or "")
        return self.type

    @property
    def kind(self) -> NodeKind:
        return NodeKind.from_type(self.node_type)

    @property
    def label(self) -> str:
        return str(self.data.get("label") or self.id)

    @property
    def config(self) -> dict[str, Any]:
        """
        Node configuration.

        `data.config` wins; configuration keys stored directly on `data`
        by older documents fill the gaps.
        """
        config = dict(self.data.get("config") or {})
        for key, value in self.data.items():
            if key not in _PRESENTATION_KEYS:
                config.setdefault(key, value)
        return config


class FlowEdge(BaseModel):
    """Directed connection between two nodes."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = ""
    source: str
    target: str
    source_handle: str | None = Field(None, alias="sourceHandle")


class FlowDocument(BaseModel):
    """
    Immutable graph description of one API endpoint.

    Validation guarantees:
    - node ids are unique
    - every edge references existing nodes

    Entry-node rules are enforced at execution time so the failure can be
    reported as an HTTP-shaped result.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field("", validation_alias=AliasChoices("id", "_id", "flowId"))
    version: int = 1
    nodes: list[FlowNode]
    edges: list[FlowEdge] = Field(default_factory=list)

    _nodes_by_id: dict[str, FlowNode] = PrivateAttr(default_factory=dict)
    _outgoing: dict[str, list[FlowEdge]] = PrivateAttr(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        # Platform documents carry ObjectIds
        return "" if value is None else str(value)

    @model_validator(mode="after")
    def _check_graph(self) -> "FlowDocument":
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        for edge in self.edges:
            if edge.source not in seen or edge.target not in seen:
                raise ValueError(
                    f"Edge {edge.id or '?'} references unknown node "
                    f"({edge.source} -> {edge.target})"
                )
        return self

    def model_post_init(self, __context: Any) -> None:
        self._nodes_by_id = {node.id: node for node in self.nodes}
        outgoing: dict[str, list[FlowEdge]] = {}
        for edge in self.edges:
            outgoing.setdefault(edge.source, []).append(edge)
        self._outgoing = outgoing

    @classmethod
    def coerce(cls, value: "FlowDocument | dict[str, Any]") -> "FlowDocument":
        """Accept either a validated document or its raw JSON form."""
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)

    def get_node(self, node_id: str) -> FlowNode | None:
        return self._nodes_by_id.get(node_id)

    def outgoing(self, node_id: str) -> list[FlowEdge]:
        """Edges leaving a node, in document order."""
        return list(self._outgoing.get(node_id, ()))

    def nodes_of_kind(self, kind: NodeKind) -> list[FlowNode]:
        return [node for node in self.nodes if node.kind is kind]
