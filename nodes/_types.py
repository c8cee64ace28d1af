"""Node plugin protocol and runtime types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
import time


PLUGIN_CATEGORIES = ("trigger", "action", "condition", "transform", "utility")


# ── Plugin metadata ─────────────────────────────────────────────────


@dataclass(frozen=True)
class PluginMetadata:
    type: str
    name: str
    description: str
    version: str
    category: str
    icon: str | None = None
    color: str | None = None
    tags: tuple[str, ...] = ()
    author: str | None = None
    documentation: str | None = None


@dataclass(frozen=True)
class VariableDefinition:
    """A field a node type promises to produce."""

    name: str
    type: str
    description: str = ""
    example: Any = None


# ── Variables ───────────────────────────────────────────────────────


@dataclass
class RuntimeVariable:
    """A field observed in one node instance's most recent output."""

    name: str
    path: str
    full_path: str
    type: str
    description: str
    example: Any
    actual_value: Any
    source_node_id: str
    parent_path: str | None = None
    depth: int = 0
    is_nested: bool = True
    extracted_at: float = field(default_factory=time.time)


@dataclass
class AvailableVariable:
    node_id: str
    node_label: str
    node_type: str
    name: str
    type: str
    description: str
    full_path: str
    example: Any = None
    is_nested: bool = False
    depth: int = 0
    actual_value: Any = None
    extracted_at: float | None = None


# ── Execution metrics ───────────────────────────────────────────────


@dataclass
class ExecutionMetrics:
    start_time: float
    end_time: float
    duration: float  # milliseconds
    input_size: int
    output_size: int


# ── Plugin protocol ─────────────────────────────────────────────────


class NodePlugin(Protocol):
    """Required contract for every node type."""

    metadata: PluginMetadata

    def create_default_data(self) -> dict[str, Any]: ...

    async def execute(
        self, input: dict[str, Any], data: dict[str, Any], context: Any
    ) -> dict[str, Any]: ...

    def get_output_schema(self) -> list[VariableDefinition]: ...


@runtime_checkable
class DataValidator(Protocol):
    def validate_data(self, data: dict[str, Any]) -> list[str]: ...


@runtime_checkable
class ConnectionProvider(Protocol):
    def get_required_connections(self) -> dict[str, int]: ...


@runtime_checkable
class Disposable(Protocol):
    def dispose(self) -> None: ...


REQUIRED_CAPABILITIES = ("create_default_data", "execute", "get_output_schema")
DEFAULT_CONNECTIONS = {"inputs": 1, "outputs": 1}
