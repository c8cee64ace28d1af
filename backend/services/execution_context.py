"""Per-invocation environment handed to node plugins."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from nodes import _expressions

from ..config import AppConfig
from .event_bus import EventBus
from .flow_logging import ContextLogger
from .variable_registry import VariableRegistry


@dataclass
class ExecutionMetadata:
    timestamp: float = field(default_factory=time.time)
    retry_count: int = 0
    total_nodes: int = 0
    current_index: int = 0


@dataclass
class ExecutionServices:
    logger: ContextLogger
    event_bus: EventBus
    config: AppConfig


class RunState:
    """Node outputs recorded during one flow run."""

    def __init__(self, flow_id: str, variable_registry: Optional[VariableRegistry] = None):
        self.flow_id = flow_id
        self.execution_id = str(uuid.uuid4())
        self._variable_registry = variable_registry
        self._outputs: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, node_id: str) -> Any:
        with self._lock:
            return self._outputs.get(node_id)

    def set(self, node_id: str, output: Any) -> None:
        with self._lock:
            self._outputs[node_id] = output
        if self._variable_registry is not None:
            self._variable_registry.register_runtime(node_id, output)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._outputs)


@dataclass
class ExecutionContext:
    flow_id: str
    node_id: str
    execution_id: str
    input: Any
    services: ExecutionServices
    run_state: RunState
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)

    @property
    def logger(self) -> ContextLogger:
        return self.services.logger

    @property
    def config(self) -> AppConfig:
        return self.services.config

    def replace_variables(self, template: str, scope: Any = None) -> str:
        """Substitute {references} in template, scoped to the input by default."""
        return _expressions.replace_variables(
            template,
            self.input if scope is None else scope,
            self.run_state.snapshot(),
        )

    def evaluate_expression(
        self,
        expression: str,
        scope: Any = None,
        names: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return _expressions.evaluate(
            expression,
            self.input if scope is None else scope,
            names=names,
            timeout_ms=self.config.execution.expression_timeout_ms,
        )

    def get_node_output(self, node_id: str) -> Any:
        return self.run_state.get(node_id)

    def set_node_output(self, node_id: str, output: Any) -> None:
        self.run_state.set(node_id, output)
        self.emit("node.output.processed", outputNodeId=node_id)

    def emit(self, event: str, **payload: Any) -> None:
        self.services.event_bus.publish(
            event,
            {
                "flowId": self.flow_id,
                "nodeId": self.node_id,
                "executionId": self.execution_id,
                "timestamp": time.time(),
                **payload,
            },
        )
