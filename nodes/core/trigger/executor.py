"""Trigger node — starts a flow and stamps run identity onto the payload."""

from __future__ import annotations

import time
from typing import Any

from nodes._coerce import as_mapping, now_iso
from nodes._types import PluginMetadata, VariableDefinition

TRIGGER_TYPES = ("manual", "webhook", "schedule", "email", "api", "file", "database")


class TriggerExecutor:
    metadata = PluginMetadata(
        type="trigger",
        name="Trigger",
        description="Starts the workflow and passes the initial payload downstream",
        version="1.0.0",
        category="trigger",
        icon="play",
        color="#10b981",
        tags=("start", "entry"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Start", "triggerType": "manual", "payload": {}}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("triggerInfo", "object", "Details about how the flow was started"),
            VariableDefinition("triggerTimestamp", "string", "ISO time the trigger fired", "2024-01-01T00:00:00Z"),
            VariableDefinition("triggerType", "string", "Kind of trigger", "manual"),
            VariableDefinition("workflowId", "string", "Id of the running flow"),
            VariableDefinition("executionId", "string", "Id of this run"),
        ]

    def get_required_connections(self) -> dict[str, int]:
        return {"inputs": 0, "outputs": 1}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        trigger_type = data.get("triggerType", "manual")
        if trigger_type not in TRIGGER_TYPES:
            errors.append(f"Trigger type must be one of: {', '.join(TRIGGER_TYPES)}")
        payload = data.get("payload")
        if payload is not None and not isinstance(payload, dict):
            errors.append("Trigger payload must be an object")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        trigger_type = data.get("triggerType", "manual")
        payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
        fired_at = now_iso()

        context.logger.info("Flow triggered (%s)", trigger_type)
        return {
            **payload,
            **as_mapping(input),
            "triggerInfo": {
                "type": trigger_type,
                "label": data.get("label", "Start"),
                "firedAt": fired_at,
                "epoch": time.time(),
            },
            "triggerTimestamp": fired_at,
            "triggerType": trigger_type,
            "workflowId": context.flow_id,
            "executionId": context.execution_id,
        }


executor = TriggerExecutor()
