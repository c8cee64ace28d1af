"""Node plugin auto-discovery.

Scans nodes/**/executor.py, imports each, collects the exported plugin.
Drop a folder with executor.py and it appears in the next registry built.
"""

from __future__ import annotations

from dataclasses import dataclass
import importlib
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredPlugin:
    node_type: str
    module_path: str
    plugin: Any


def discover_plugins() -> list[DiscoveredPlugin]:
    """Walk nodes/**/executor.py and return each module's 'executor' export."""
    root = Path(__file__).parent
    discovered: list[DiscoveredPlugin] = []

    for executor_path in sorted(root.rglob("executor.py")):
        # nodes/flow/condition/executor.py -> nodes.flow.condition.executor
        relative = executor_path.relative_to(root.parent)
        module_path = str(relative.with_suffix("")).replace("/", ".").replace("\\", ".")

        try:
            module = importlib.import_module(module_path)
        except Exception as e:
            logger.error(f"nodes: failed to load {module_path}: {e}")
            continue

        plugin = getattr(module, "executor", None)
        if plugin is None:
            logger.warning(f"nodes: {module_path} has no 'executor' export")
            continue

        metadata = getattr(plugin, "metadata", None)
        node_type = getattr(metadata, "type", None)
        if not node_type:
            logger.warning(f"nodes: {module_path} executor has no metadata type")
            continue

        discovered.append(DiscoveredPlugin(node_type, module_path, plugin))
        logger.debug(f"nodes: discovered '{node_type}' from {module_path}")

    return discovered


def register_builtin_plugins(registry: Any) -> list[str]:
    """Register every discovered plugin into registry. Returns registered types."""
    registered: list[str] = []
    for found in discover_plugins():
        if registry.register(found.plugin):
            registered.append(found.node_type)
    return registered


def list_builtin_types() -> list[str]:
    return [found.node_type for found in discover_plugins()]
