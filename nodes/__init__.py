"""Node plugin system. Auto-discovers plugins from subdirectories."""

from nodes._registry import (
    DiscoveredPlugin,
    discover_plugins,
    list_builtin_types,
    register_builtin_plugins,
)

__all__ = [
    "DiscoveredPlugin",
    "discover_plugins",
    "list_builtin_types",
    "register_builtin_plugins",
]
