"""Builtin plugin discovery and the shape of every shipped plugin."""

from __future__ import annotations

import pytest

from backend.services.plugin_registry import PluginRegistry, validate_capabilities, validate_metadata
from nodes import discover_plugins, list_builtin_types, register_builtin_plugins

BUILTIN_TYPES = {
    "trigger",
    "end",
    "condition",
    "switch",
    "loop",
    "delay",
    "transform",
    "math",
    "http-request",
    "llm-agent",
    "real-numbers",
}


def test_discovers_every_builtin():
    assert set(list_builtin_types()) == BUILTIN_TYPES


def test_module_paths_follow_folder_layout():
    found = {plugin.node_type: plugin.module_path for plugin in discover_plugins()}

    assert found["condition"] == "nodes.flow.condition.executor"
    assert found["http-request"] == "nodes.integration.http_request.executor"


@pytest.mark.parametrize("found", discover_plugins(), ids=lambda f: f.node_type)
def test_builtin_is_a_valid_plugin(found):
    checks = validate_metadata(found.plugin.metadata)

    assert checks["errors"] == []
    assert checks["warnings"] == []
    assert validate_capabilities(found.plugin) == []
    assert found.plugin.create_default_data()["label"]


def test_register_builtins_into_fresh_registry():
    registry = PluginRegistry()

    registered = register_builtin_plugins(registry)

    assert set(registered) == BUILTIN_TYPES
    assert registry.validate_plugins() == {}
    assert registry.get_stats()["byCategory"] == {
        "trigger": 1,
        "utility": 4,
        "condition": 2,
        "transform": 2,
        "action": 2,
    }


def test_branching_plugins_declare_route_keys(engine):
    registry = engine.plugin_registry

    assert registry.get("condition").route_key == "branchPath"
    assert registry.get("switch").route_key == "outputPath"
    assert getattr(registry.get("math"), "route_key", None) is None


def test_connection_info(engine):
    info = engine.plugin_registry.get_plugin_info("condition")

    assert info["connections"] == {"inputs": 1, "outputs": 2}
    assert engine.plugin_registry.get_plugin_info("trigger")["connections"]["inputs"] == 0
