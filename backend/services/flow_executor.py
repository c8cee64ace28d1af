"""Flow execution engine.

Runs a flow graph one node at a time, starting at its trigger. Each node's
input is the previous node's output; after every node the output is recorded
in the run state and the variable registry so later nodes can reference it.

The algorithm:
  1. Validate the graph (known, enabled plugin types; each node's data
     passes the plugin's own validation; exactly one trigger)
  2. Clear runtime variables left over from earlier runs of these nodes
  3. From the trigger: execute, record output, pick the outgoing edge
  4. Branching plugins expose a route_key; its value in the output names the
     sourceHandle to follow. Other nodes follow their default edge
  5. A node reached twice stops the run (infinite loop)
  6. A plugin that raises is retried, then fails the run

Node failures that plugins turn into data (condition errors, HTTP failures)
do not stop the run. A switch that routes to "error" with no error edge does.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..models.flow import ExecutionLogEntry, FlowEdge, FlowGraph, FlowNode
from .execution_context import ExecutionMetadata, RunState

logger = logging.getLogger(__name__)

DEFAULT_HANDLES = (None, "", "output", "main")
ERROR_ROUTE = "error"


class FlowValidationError(ValueError):
    """Raised when a graph cannot be run."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class FlowExecutionError(RuntimeError):
    """Raised when a run stops on a node fault."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id


@dataclass
class FlowRunResult:
    flow_id: str
    execution_id: str
    status: str  # completed, failed
    entries: list[ExecutionLogEntry] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    final_output: Any = None
    error: Optional[str] = None


def as_graph(graph: FlowGraph | dict[str, Any]) -> FlowGraph:
    if isinstance(graph, FlowGraph):
        return graph
    return FlowGraph.model_validate(graph)


# ── Validation ──────────────────────────────────────────────────────


def validate_flow(graph: FlowGraph | dict[str, Any], engine: Any) -> list[str]:
    """Every problem that would stop the graph from running."""
    try:
        graph = as_graph(graph)
    except ValueError as e:
        return [f"Invalid flow graph: {e}"]

    errors: list[str] = []
    triggers = graph.find_triggers()
    if not triggers:
        errors.append("Flow must have a trigger node")
    elif len(triggers) > 1:
        errors.append("Flow must have exactly one trigger node")

    for node in graph.nodes:
        plugin = engine.plugin_registry.get(node.type)
        if plugin is None:
            errors.append(f"Node '{node.label}': no enabled plugin for type '{node.type}'")
            continue
        validate = getattr(plugin, "validate_data", None)
        if callable(validate):
            errors.extend(f"Node '{node.label}': {message}" for message in validate(node.data))
    return errors


# ── Routing ─────────────────────────────────────────────────────────


def select_next_edge(
    graph: FlowGraph, node: FlowNode, plugin: Any, output: Any
) -> tuple[Optional[FlowEdge], Optional[str]]:
    """Pick the outgoing edge for node. Returns (edge, route)."""
    outgoing = graph.outgoing_edges(node.id)
    route_key = getattr(plugin, "route_key", None)

    if route_key:
        route = output.get(route_key) if isinstance(output, dict) else None
        route = None if route is None else str(route)
        for edge in outgoing:
            if edge.sourceHandle == route:
                return edge, route
        return None, route

    for edge in outgoing:
        if edge.sourceHandle in DEFAULT_HANDLES:
            return edge, None
    return (outgoing[0] if outgoing else None), None


# ── Main engine ─────────────────────────────────────────────────────


def _entry(node: FlowNode, status: str, message: str = "", **fields: Any) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        nodeId=node.id,
        nodeLabel=node.label,
        nodeType=node.type,
        status=status,
        message=message,
        timestamp=time.time(),
        **fields,
    )


async def run_flow(
    graph: FlowGraph | dict[str, Any],
    engine: Any,
    *,
    flow_id: str = "flow",
    initial_input: Any = None,
    run: Optional[RunState] = None,
) -> AsyncIterator[ExecutionLogEntry]:
    """Execute the flow, yielding a log entry per status change.

    Raises FlowValidationError before the first node runs, and
    FlowExecutionError when a node fault stops the run.
    """
    run = run or engine.new_run(flow_id)
    bus = engine.event_bus
    base_event = {"flowId": run.flow_id, "executionId": run.execution_id}

    try:
        graph = as_graph(graph)
    except ValueError as e:
        errors = [f"Invalid flow graph: {e}"]
    else:
        errors = validate_flow(graph, engine)
    if errors:
        bus.publish("flow.execution.failed", {**base_event, "errors": errors})
        raise FlowValidationError(errors)

    for node in graph.nodes:
        engine.variable_registry.invalidate_runtime(node.id)

    logger.info(f"Flow {run.flow_id}: starting run {run.execution_id}")
    bus.publish("flow.execution.started", {**base_event, "nodeCount": len(graph.nodes)})

    retry_attempts = max(0, engine.config.execution.retry_attempts)
    current: Optional[FlowNode] = graph.find_triggers()[0]
    current_input: Any = {} if initial_input is None else initial_input
    visited: set[str] = set()
    index = 0

    while current is not None:
        node = current
        if node.id in visited:
            message = f"Infinite loop detected at node '{node.label}'"
            yield _entry(node, "error", message, error=message)
            bus.publish("flow.execution.failed", {**base_event, "nodeId": node.id, "error": message})
            raise FlowExecutionError(message, node.id)
        visited.add(node.id)

        plugin = engine.plugin_registry.get(node.type)
        yield _entry(node, "processing", f"Executing {node.label}", input=current_input)
        bus.publish(
            "node.execution.started",
            {**base_event, "nodeId": node.id, "nodeType": node.type},
        )

        output: Any = None
        last_error: Optional[Exception] = None
        for attempt in range(retry_attempts + 1):
            context = engine.create_context(
                run,
                node.id,
                current_input,
                ExecutionMetadata(
                    retry_count=attempt,
                    total_nodes=len(graph.nodes),
                    current_index=index,
                ),
            )
            try:
                output = await engine.plugin_registry.execute(
                    node.type, current_input, dict(node.data), context
                )
                last_error = None
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Flow {run.flow_id}: node {node.id} raised on attempt "
                    f"{attempt + 1}/{retry_attempts + 1}: {e}"
                )

        if last_error is not None:
            message = f"Node '{node.label}' failed: {last_error}"
            yield _entry(node, "error", message, input=current_input, error=str(last_error))
            bus.publish(
                "node.execution.failed",
                {**base_event, "nodeId": node.id, "nodeType": node.type, "error": str(last_error)},
            )
            bus.publish("flow.execution.failed", {**base_event, "nodeId": node.id, "error": message})
            raise FlowExecutionError(message, node.id) from last_error

        context.set_node_output(node.id, output)
        bus.publish(
            "node.execution.completed",
            {**base_event, "nodeId": node.id, "nodeType": node.type},
        )
        yield _entry(node, "success", f"{node.label} completed", input=current_input, output=output)

        edge, route = select_next_edge(graph, node, plugin, output)
        if edge is None and route == ERROR_ROUTE:
            message = output.get("error") if isinstance(output, dict) else None
            message = message or f"Node '{node.label}' routed to error"
            bus.publish("flow.execution.failed", {**base_event, "nodeId": node.id, "error": message})
            raise FlowExecutionError(str(message), node.id)

        current = graph.get_node(edge.target) if edge is not None else None
        current_input = output
        index += 1

    for node in graph.nodes:
        if node.id not in visited:
            yield _entry(node, "skipped", f"{node.label} was not on the executed path")

    logger.info(f"Flow {run.flow_id}: run {run.execution_id} completed ({index} nodes)")
    bus.publish(
        "flow.execution.completed",
        {**base_event, "executedNodes": index, "finalOutput": current_input},
    )


async def execute_flow(
    graph: FlowGraph | dict[str, Any],
    engine: Any,
    *,
    flow_id: str = "flow",
    initial_input: Any = None,
) -> FlowRunResult:
    """Run a flow to completion and collect its log. Never raises on node faults."""
    run = engine.new_run(flow_id)
    result = FlowRunResult(flow_id=flow_id, execution_id=run.execution_id, status="completed")
    try:
        async for entry in run_flow(
            graph, engine, flow_id=flow_id, initial_input=initial_input, run=run
        ):
            result.entries.append(entry)
            if entry.status == "success":
                result.final_output = entry.output
    except (FlowValidationError, FlowExecutionError) as e:
        result.status = "failed"
        result.error = str(e)
    result.outputs = run.snapshot()
    return result
