"""Backend model-layer schemas."""

from .flow import ExecutionLogEntry, FlowEdge, FlowGraph, FlowNode, Position

__all__ = [
    "ExecutionLogEntry",
    "FlowEdge",
    "FlowGraph",
    "FlowNode",
    "Position",
]
