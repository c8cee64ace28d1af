"""Shared test fixtures and graph helpers for the engine test suite."""

from __future__ import annotations

from typing import Any

import pytest

from backend.config import AppConfig, ExecutionConfig
from backend.services.engine import FlowEngine
from backend.services.event_bus import EventBus
from backend.services.execution_context import ExecutionContext


# ---------------------------------------------------------------------------
# Event capture
# ---------------------------------------------------------------------------


class EventRecorder:
    """Subscribes to a set of events on a bus and records (event, payload)."""

    def __init__(self, bus: EventBus, *events: str) -> None:
        self.events: list[tuple[str, Any]] = []
        for name in events:
            bus.subscribe(name, lambda payload, name=name: self.events.append((name, payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[Any]:
        return [payload for event, payload in self.events if event == name]


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


def make_config(**execution: Any) -> AppConfig:
    defaults = {"retry_attempts": 0, "expression_timeout_ms": 2000}
    return AppConfig(execution=ExecutionConfig(**{**defaults, **execution}))


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def engine() -> FlowEngine:
    engine = FlowEngine.create(make_config())
    yield engine
    engine.shutdown()


def make_context(
    engine: FlowEngine,
    input: Any = None,
    *,
    node_id: str = "node-1",
    flow_id: str = "flow-test",
) -> ExecutionContext:
    run = engine.new_run(flow_id)
    return engine.create_context(run, node_id, {} if input is None else input)


# ---------------------------------------------------------------------------
# Graph construction helpers
# ---------------------------------------------------------------------------


def make_node(node_id: str, node_type: str = "trigger", **data: Any) -> dict[str, Any]:
    """Build a single node dict matching the graph schema."""
    return {
        "id": node_id,
        "type": node_type,
        "position": {"x": 0, "y": 0},
        "data": {"label": node_id, **data},
    }


def make_edge(
    source: str,
    target: str,
    source_handle: str | None = None,
    target_handle: str | None = None,
) -> dict[str, Any]:
    """Build an edge dict for the graph schema."""
    suffix = f"-{source_handle}" if source_handle else ""
    return {
        "id": f"{source}->{target}{suffix}",
        "source": source,
        "target": target,
        "sourceHandle": source_handle,
        "targetHandle": target_handle,
    }


def make_graph(
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a minimal graph JSON structure from nodes and edges."""
    return {"nodes": nodes, "edges": edges or []}


# ---------------------------------------------------------------------------
# Minimal plugins for registry tests
# ---------------------------------------------------------------------------


class StubPlugin:
    """Plugin with a configurable type whose execute echoes its input."""

    def __init__(self, node_type: str = "stub", category: str = "utility", **overrides: Any):
        from nodes._types import PluginMetadata

        fields = {
            "type": node_type,
            "name": f"Stub {node_type}",
            "description": "Test plugin",
            "version": "1.0.0",
            "category": category,
            "icon": "box",
            "color": "#000000",
            **overrides,
        }
        self.metadata = PluginMetadata(**fields)
        self.disposed = False
        self.calls = 0

    def create_default_data(self) -> dict[str, Any]:
        return {"label": self.metadata.name}

    def get_output_schema(self) -> list[Any]:
        return []

    async def execute(self, input: Any, data: dict[str, Any], context: Any) -> dict[str, Any]:
        self.calls += 1
        return {**(input or {}), "stubbed": True}

    def dispose(self) -> None:
        self.disposed = True
