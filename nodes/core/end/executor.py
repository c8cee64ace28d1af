"""End node — marks the flow complete and shapes the final result."""

from __future__ import annotations

from typing import Any

from nodes._coerce import as_mapping, now_iso
from nodes._types import PluginMetadata, VariableDefinition


class EndExecutor:
    metadata = PluginMetadata(
        type="end",
        name="End",
        description="Finishes the workflow and reports its final result",
        version="1.0.0",
        category="utility",
        icon="flag",
        color="#ef4444",
        tags=("finish", "exit"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "End", "message": "Workflow completed", "status": "success"}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("endMessage", "string", "Completion message", "Workflow completed"),
            VariableDefinition("workflowResult", "object", "Data that reached the end node"),
            VariableDefinition("completedAt", "string", "ISO completion time"),
            VariableDefinition("workflowComplete", "boolean", "Always true", True),
            VariableDefinition("finalStatus", "string", "Final status", "success"),
        ]

    def get_required_connections(self) -> dict[str, int]:
        return {"inputs": 1, "outputs": 0}

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        message = context.replace_variables(data.get("message") or "Workflow completed")
        status = data.get("status") or "success"
        payload = as_mapping(input)

        context.logger.info("Flow reached end: %s", message)
        return {
            **payload,
            "endMessage": message,
            "workflowResult": payload,
            "finalMessage": message,
            "completedAt": now_iso(),
            "workflowComplete": True,
            "finalStatus": status,
        }


executor = EndExecutor()
