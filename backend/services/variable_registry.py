"""
Variable Registry - what each node can reference.

Two catalogs are kept:
  - static schemas, declared once per node type
  - runtime sets, extracted from each node instance's latest output

available_variables_for() walks the graph backwards from a node and merges
both catalogs for every upstream node it reaches.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nodes._paths import REFERENCE_PATTERN
from nodes._types import AvailableVariable, RuntimeVariable, VariableDefinition

from ..models.flow import FlowGraph
from .event_bus import EventBus
from .variable_extractor import NestedVariableExtractor

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_MS = 60000


@dataclass(frozen=True)
class VariableReference:
    full_match: str
    node_id: str
    path: str

    @property
    def full_path(self) -> str:
        return f"{self.node_id}.{self.path}"


@dataclass
class ReferenceValidation:
    valid: List[VariableReference] = field(default_factory=list)
    invalid: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.invalid


@dataclass
class _RuntimeSet:
    variables: List[RuntimeVariable]
    extracted_at: float


def parse_references(text: str) -> List[VariableReference]:
    """Every {nodeId.path} occurrence in text, in order."""
    if not isinstance(text, str):
        return []
    return [
        VariableReference(full_match=m.group(0), node_id=m.group(1), path=m.group(2))
        for m in REFERENCE_PATTERN.finditer(text)
    ]


def _sort_key(variable: AvailableVariable) -> tuple:
    return (1 if variable.is_nested else 0, variable.depth, variable.full_path)


class VariableRegistry:
    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        extractor: Optional[NestedVariableExtractor] = None,
    ):
        self._event_bus = event_bus
        self._extractor = extractor or NestedVariableExtractor()
        self._schemas: Dict[str, List[VariableDefinition]] = {}
        self._runtime: Dict[str, _RuntimeSet] = {}
        self._lock = threading.RLock()

    # ── Static schemas ──────────────────────────────────────────────

    def register_schema(self, node_type: str, definitions: List[VariableDefinition]) -> None:
        with self._lock:
            self._schemas[node_type] = list(definitions)
        logger.debug("Registered %d schema variables for '%s'", len(definitions), node_type)
        self._publish(
            "variables.schema.registered",
            {"nodeType": node_type, "variableCount": len(definitions)},
        )

    def get_schema(self, node_type: str) -> List[VariableDefinition]:
        with self._lock:
            return list(self._schemas.get(node_type, ()))

    # ── Runtime sets ────────────────────────────────────────────────

    def register_runtime(self, node_id: str, output: Any) -> List[RuntimeVariable]:
        """Replace node_id's runtime set with the variables extracted from output."""
        variables = [] if output is None else self._extractor.extract(output, node_id)
        if not variables:
            self.invalidate_runtime(node_id)
            return []

        runtime_set = _RuntimeSet(variables=variables, extracted_at=time.time())
        with self._lock:
            self._runtime[node_id] = runtime_set
        self._publish(
            "variables.runtime.registered",
            {
                "nodeId": node_id,
                "variableCount": len(variables),
                "variables": [v.full_path for v in variables],
            },
        )
        return list(variables)

    def get_runtime(self, node_id: str) -> List[RuntimeVariable]:
        with self._lock:
            runtime_set = self._runtime.get(node_id)
            return list(runtime_set.variables) if runtime_set else []

    def invalidate_runtime(self, node_id: str) -> bool:
        with self._lock:
            removed = self._runtime.pop(node_id, None)
        if removed is None:
            return False
        self._publish("variables.runtime.invalidated", {"nodeId": node_id})
        return True

    def clear_all_runtime(self) -> int:
        with self._lock:
            count = len(self._runtime)
            self._runtime.clear()
        if count:
            self._publish("variables.runtime.cleared", {"clearedCount": count})
        return count

    def are_runtime_variables_fresh(
        self, node_id: str, max_age_ms: float = DEFAULT_FRESHNESS_MS
    ) -> bool:
        with self._lock:
            runtime_set = self._runtime.get(node_id)
        if runtime_set is None:
            return False
        return (time.time() - runtime_set.extracted_at) * 1000 <= max_age_ms

    # ── Availability ────────────────────────────────────────────────

    def available_variables_for(self, node_id: str, graph: FlowGraph) -> List[AvailableVariable]:
        """Variables from every node with a directed path into node_id."""
        incoming: Dict[str, List[str]] = {}
        for edge in graph.edges:
            incoming.setdefault(edge.target, []).append(edge.source)

        visited = {node_id}
        queue = deque(incoming.get(node_id, ()))
        reached: List[str] = []
        while queue:
            source = queue.popleft()
            if source in visited:
                continue
            visited.add(source)
            reached.append(source)
            queue.extend(incoming.get(source, ()))

        with self._lock:
            schemas = dict(self._schemas)
            runtime = {nid: self._runtime.get(nid) for nid in reached}

        available: List[AvailableVariable] = []
        for source_id in reached:
            node = graph.get_node(source_id)
            if node is None:
                continue
            for definition in schemas.get(node.type, ()):
                available.append(
                    AvailableVariable(
                        node_id=node.id,
                        node_label=node.label,
                        node_type=node.type,
                        name=definition.name,
                        type=definition.type,
                        description=definition.description,
                        full_path=f"{node.id}.{definition.name}",
                        example=definition.example,
                    )
                )
            runtime_set = runtime.get(source_id)
            if runtime_set is None:
                continue
            for variable in runtime_set.variables:
                available.append(
                    AvailableVariable(
                        node_id=node.id,
                        node_label=node.label,
                        node_type=node.type,
                        name=variable.name,
                        type=variable.type,
                        description=variable.description,
                        full_path=variable.full_path,
                        example=variable.example,
                        is_nested=True,
                        depth=variable.depth,
                        actual_value=variable.actual_value,
                        extracted_at=variable.extracted_at,
                    )
                )

        available.sort(key=_sort_key)
        return available

    def suggest(self, node_id: str, graph: FlowGraph, search_term: str = "") -> List[AvailableVariable]:
        available = self.available_variables_for(node_id, graph)
        term = search_term.strip().lower()
        if not term:
            return available
        return [
            v
            for v in available
            if term in v.name.lower()
            or term in v.node_label.lower()
            or term in (v.description or "").lower()
            or term in v.full_path.lower()
        ]

    # ── References ──────────────────────────────────────────────────

    def validate_references(
        self, text: str, available: List[AvailableVariable]
    ) -> ReferenceValidation:
        known = {v.full_path for v in available}
        result = ReferenceValidation()
        for reference in parse_references(text):
            if reference.full_path in known:
                result.valid.append(reference)
            else:
                result.invalid.append(
                    {
                        "reference": reference,
                        "reason": (
                            f'Variable "{reference.full_path}" is not available '
                            "or has not been executed yet"
                        ),
                    }
                )
        return result

    def get_registry_stats(self) -> Dict[str, Any]:
        with self._lock:
            runtime_count = sum(len(s.variables) for s in self._runtime.values())
            return {
                "schemaTypes": len(self._schemas),
                "schemaVariables": sum(len(d) for d in self._schemas.values()),
                "runtimeNodes": len(self._runtime),
                "runtimeVariables": runtime_count,
                "extractor": self._extractor.get_stats(),
            }

    def _publish(self, event: str, payload: Dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event, payload)
