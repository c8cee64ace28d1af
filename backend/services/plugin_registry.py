"""
Plugin Registry - the catalog of node-type implementations.

Registration validates metadata and required capabilities up front and
reports failure as a False return. Execution goes through execute() so the
registry can keep a trailing window of timing metrics per type.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Optional

from nodes._coerce import json_size
from nodes._types import (
    DEFAULT_CONNECTIONS,
    PLUGIN_CATEGORIES,
    REQUIRED_CAPABILITIES,
    ConnectionProvider,
    DataValidator,
    Disposable,
    ExecutionMetrics,
    NodePlugin,
    PluginMetadata,
)

from .event_bus import EventBus
from .variable_registry import VariableRegistry

logger = logging.getLogger(__name__)

METRICS_WINDOW = 100
_SEMVER = re.compile(r"^\d+\.\d+\.\d+")


@dataclass
class PluginRegistration:
    plugin: Any
    metadata: PluginMetadata
    enabled: bool = True
    loaded_at: float = field(default_factory=time.time)
    metrics: Deque[ExecutionMetrics] = field(
        default_factory=lambda: deque(maxlen=METRICS_WINDOW)
    )

    @property
    def version(self) -> str:
        return self.metadata.version


@dataclass
class RegistrationResult:
    type: str
    success: bool
    error: Optional[str] = None


def validate_metadata(metadata: Any) -> Dict[str, List[str]]:
    """Check required plugin metadata. Returns {"errors": [...], "warnings": [...]}."""
    errors: List[str] = []
    warnings: List[str] = []
    if metadata is None:
        return {"errors": ["Plugin metadata is required"], "warnings": warnings}

    for name in ("type", "name", "description", "version"):
        value = getattr(metadata, name, None)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"Plugin {name} is required")

    category = getattr(metadata, "category", None)
    if category not in PLUGIN_CATEGORIES:
        errors.append(f"Plugin category must be one of: {', '.join(PLUGIN_CATEGORIES)}")

    version = getattr(metadata, "version", None)
    if isinstance(version, str) and version and not _SEMVER.match(version):
        warnings.append("Plugin version should follow semantic versioning (e.g., 1.0.0)")
    if not getattr(metadata, "icon", None):
        warnings.append("Plugin icon is recommended for better UX")
    if not getattr(metadata, "color", None):
        warnings.append("Plugin color is recommended for better UX")

    return {"errors": errors, "warnings": warnings}


def validate_capabilities(plugin: Any) -> List[str]:
    return [
        f"Plugin must implement {name}()"
        for name in REQUIRED_CAPABILITIES
        if not callable(getattr(plugin, name, None))
    ]


class PluginRegistry:
    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        variable_registry: Optional[VariableRegistry] = None,
    ):
        self._event_bus = event_bus
        self._variable_registry = variable_registry
        self._registrations: Dict[str, PluginRegistration] = {}
        self._lock = threading.RLock()

    # ── Registration ────────────────────────────────────────────────

    def register(self, plugin: Any) -> bool:
        metadata = getattr(plugin, "metadata", None)
        checks = validate_metadata(metadata)
        errors = checks["errors"] + validate_capabilities(plugin)
        label = getattr(metadata, "type", None) or type(plugin).__name__

        if errors:
            logger.error("Plugin '%s' failed validation: %s", label, "; ".join(errors))
            return False
        for warning in checks["warnings"]:
            logger.warning("Plugin '%s': %s", label, warning)

        schema = None
        try:
            schema = list(plugin.get_output_schema() or [])
            on_initialize = getattr(plugin, "on_initialize", None)
            if callable(on_initialize):
                on_initialize()
        except Exception as exc:
            logger.error("Plugin '%s' failed to initialize: %s", label, exc)
            return False

        node_type = metadata.type
        with self._lock:
            if node_type in self._registrations:
                logger.warning("Plugin '%s' is already registered, overriding", node_type)
            self._registrations[node_type] = PluginRegistration(plugin=plugin, metadata=metadata)

        if self._variable_registry is not None and schema:
            self._variable_registry.register_schema(node_type, schema)

        logger.info("Registered plugin '%s' v%s", node_type, metadata.version)
        self._publish(
            "node.plugin.registered",
            {"type": node_type, "name": metadata.name, "version": metadata.version},
        )
        return True

    def register_many(self, plugins: Iterable[Any]) -> List[RegistrationResult]:
        results: List[RegistrationResult] = []
        for plugin in plugins:
            node_type = getattr(getattr(plugin, "metadata", None), "type", None) or "unknown"
            try:
                ok = self.register(plugin)
                error = None if ok else "Registration failed validation"
            except Exception as exc:
                ok, error = False, str(exc)
            results.append(RegistrationResult(type=node_type, success=ok, error=error))
        return results

    def unregister(self, node_type: str) -> bool:
        with self._lock:
            registration = self._registrations.pop(node_type, None)
        if registration is None:
            logger.warning("Cannot unregister '%s': not registered", node_type)
            return False

        self._dispose(node_type, registration.plugin)
        logger.info("Unregistered plugin '%s'", node_type)
        self._publish("node.plugin.unregistered", {"type": node_type})
        return True

    def dispose_all(self) -> None:
        with self._lock:
            registrations = list(self._registrations.items())
            self._registrations.clear()
        for node_type, registration in registrations:
            self._dispose(node_type, registration.plugin)

    def _dispose(self, node_type: str, plugin: Any) -> None:
        if not isinstance(plugin, Disposable):
            return
        try:
            plugin.dispose()
        except Exception as exc:
            logger.error("Plugin '%s' failed during dispose: %s", node_type, exc)

    # ── Lookup ──────────────────────────────────────────────────────

    def get(self, node_type: str) -> Optional[NodePlugin]:
        with self._lock:
            registration = self._registrations.get(node_type)
        if registration is None or not registration.enabled:
            return None
        return registration.plugin

    def is_registered(self, node_type: str) -> bool:
        with self._lock:
            return node_type in self._registrations

    def get_metadata(self, node_type: str) -> Optional[PluginMetadata]:
        with self._lock:
            registration = self._registrations.get(node_type)
        return registration.metadata if registration else None

    def get_all_types(self) -> List[str]:
        with self._lock:
            return [t for t, r in self._registrations.items() if r.enabled]

    def get_all_plugins(self) -> List[NodePlugin]:
        with self._lock:
            return [r.plugin for r in self._registrations.values() if r.enabled]

    def get_plugins_by_category(self, category: str) -> List[NodePlugin]:
        with self._lock:
            return [
                r.plugin
                for r in self._registrations.values()
                if r.enabled and r.metadata.category == category
            ]

    def search(self, query: str) -> List[NodePlugin]:
        term = query.strip().lower()
        with self._lock:
            registrations = [r for r in self._registrations.values() if r.enabled]
        if not term:
            return [r.plugin for r in registrations]
        matches = []
        for registration in registrations:
            metadata = registration.metadata
            haystack = [metadata.type, metadata.name, metadata.description, *metadata.tags]
            if any(term in (text or "").lower() for text in haystack):
                matches.append(registration.plugin)
        return matches

    def set_enabled(self, node_type: str, enabled: bool) -> bool:
        with self._lock:
            registration = self._registrations.get(node_type)
            if registration is None:
                return False
            registration.enabled = enabled
        logger.info("Plugin '%s' %s", node_type, "enabled" if enabled else "disabled")
        self._publish("node.plugin.toggled", {"type": node_type, "enabled": enabled})
        return True

    def get_plugin_info(self, node_type: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            registration = self._registrations.get(node_type)
        if registration is None:
            return None
        plugin = registration.plugin
        help_text = getattr(plugin, "get_help_text", None)
        return {
            "metadata": registration.metadata,
            "enabled": registration.enabled,
            "loadedAt": registration.loaded_at,
            "version": registration.version,
            "connections": (
                plugin.get_required_connections()
                if isinstance(plugin, ConnectionProvider)
                else dict(DEFAULT_CONNECTIONS)
            ),
            "helpText": help_text() if callable(help_text) else registration.metadata.description,
            "averageExecutionTime": self.get_average_execution_time(node_type),
            "executionCount": len(registration.metrics),
        }

    # ── Execution & metrics ─────────────────────────────────────────

    async def execute(
        self, node_type: str, input: Dict[str, Any], data: Dict[str, Any], context: Any
    ) -> Dict[str, Any]:
        """Run an enabled plugin and record its timing in the metrics window."""
        with self._lock:
            registration = self._registrations.get(node_type)
        if registration is None or not registration.enabled:
            raise KeyError(f"No enabled plugin registered for node type '{node_type}'")

        start = time.time()
        output: Any = None
        try:
            output = await registration.plugin.execute(input, data, context)
            return output
        finally:
            end = time.time()
            registration.metrics.append(
                ExecutionMetrics(
                    start_time=start,
                    end_time=end,
                    duration=(end - start) * 1000,
                    input_size=json_size(input),
                    output_size=json_size(output),
                )
            )

    def get_execution_metrics(self, node_type: str) -> List[ExecutionMetrics]:
        with self._lock:
            registration = self._registrations.get(node_type)
            return list(registration.metrics) if registration else []

    def get_average_execution_time(self, node_type: str) -> float:
        metrics = self.get_execution_metrics(node_type)
        if not metrics:
            return 0.0
        return sum(m.duration for m in metrics) / len(metrics)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            registrations = dict(self._registrations)
        by_category: Dict[str, int] = {}
        for registration in registrations.values():
            category = registration.metadata.category
            by_category[category] = by_category.get(category, 0) + 1
        enabled = sum(1 for r in registrations.values() if r.enabled)
        return {
            "total": len(registrations),
            "enabled": enabled,
            "disabled": len(registrations) - enabled,
            "byCategory": by_category,
            "averageExecutionTime": {
                node_type: self.get_average_execution_time(node_type)
                for node_type in registrations
            },
        }

    def validate_plugins(self) -> Dict[str, List[str]]:
        """Check every plugin's default data against its own validation."""
        with self._lock:
            registrations = dict(self._registrations)
        invalid: Dict[str, List[str]] = {}
        for node_type, registration in registrations.items():
            plugin = registration.plugin
            try:
                defaults = plugin.create_default_data()
                errors = list(plugin.validate_data(defaults)) if isinstance(plugin, DataValidator) else []
            except Exception as exc:
                errors = [f"Validation raised: {exc}"]
            if errors:
                invalid[node_type] = errors
        return invalid

    def _publish(self, event: str, payload: Dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event, payload)
