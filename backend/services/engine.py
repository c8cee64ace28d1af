"""Engine wiring.

Builds the event bus, registries and config explicitly and hands them to
whoever needs them. Each FlowEngine is independent; tests and concurrent
hosts construct their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import AppConfig, ConfigManager
from .event_bus import EventBus
from .execution_context import (
    ExecutionContext,
    ExecutionMetadata,
    ExecutionServices,
    RunState,
)
from .flow_logging import ContextLogger
from .plugin_registry import PluginRegistry
from .variable_extractor import ExtractionLimits, NestedVariableExtractor
from .variable_registry import VariableRegistry

logger = logging.getLogger(__name__)


@dataclass
class FlowEngine:
    config_manager: ConfigManager
    event_bus: EventBus
    variable_registry: VariableRegistry
    plugin_registry: PluginRegistry
    logger: ContextLogger = field(
        default_factory=lambda: ContextLogger(logging.getLogger("nodeflow"))
    )

    @classmethod
    def create(
        cls,
        config: Optional[AppConfig] = None,
        *,
        event_bus: Optional[EventBus] = None,
        limits: Optional[ExtractionLimits] = None,
        load_builtins: bool = True,
    ) -> "FlowEngine":
        bus = event_bus or EventBus()
        variables = VariableRegistry(bus, NestedVariableExtractor(limits))
        plugins = PluginRegistry(bus, variables)
        engine = cls(
            config_manager=ConfigManager(config),
            event_bus=bus,
            variable_registry=variables,
            plugin_registry=plugins,
        )
        if load_builtins:
            from nodes import register_builtin_plugins

            registered = register_builtin_plugins(plugins)
            logger.info(f"Engine loaded {len(registered)} builtin plugins")
        return engine

    @property
    def config(self) -> AppConfig:
        return self.config_manager.get()

    def new_run(self, flow_id: str) -> RunState:
        return RunState(flow_id, self.variable_registry)

    def create_context(
        self,
        run: RunState,
        node_id: str,
        input: Any,
        metadata: Optional[ExecutionMetadata] = None,
    ) -> ExecutionContext:
        return ExecutionContext(
            flow_id=run.flow_id,
            node_id=node_id,
            execution_id=run.execution_id,
            input=input,
            services=ExecutionServices(
                logger=self.logger.child(flow=run.flow_id, node=node_id),
                event_bus=self.event_bus,
                config=self.config,
            ),
            run_state=run,
            metadata=metadata or ExecutionMetadata(),
        )

    def shutdown(self) -> None:
        self.plugin_registry.dispose_all()
        self.variable_registry.clear_all_runtime()
        self.event_bus.remove_all_listeners()
