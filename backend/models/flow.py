from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Position(BaseModel):
    x: float = 0
    y: float = 0


class FlowNode(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str
    type: str
    position: Position = Field(default_factory=Position)
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        label = self.data.get("label")
        return label if isinstance(label, str) and label else self.id


class FlowEdge(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None


class FlowGraph(BaseModel):
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "FlowGraph":
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("Node ids must be unique")
        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise ValueError(
                    f"Edge '{edge.id}' references unknown node "
                    f"({edge.source} -> {edge.target})"
                )
        return self

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def incoming_edges(self, node_id: str) -> List[FlowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing_edges(self, node_id: str) -> List[FlowEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def find_triggers(self) -> List[FlowNode]:
        return [node for node in self.nodes if node.type == "trigger"]


class ExecutionLogEntry(BaseModel):
    """One status record emitted while a flow runs."""

    nodeId: str
    nodeLabel: str
    nodeType: str
    status: str  # processing, success, error, skipped
    message: str = ""
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    timestamp: float
