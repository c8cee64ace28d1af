"""Condition node — evaluate a boolean expression, route to true/false."""

from __future__ import annotations

import time
from typing import Any

from nodes._coerce import as_mapping, elapsed_ms, now_iso
from nodes._expressions import ExpressionError, check_syntax, find_dangerous_patterns
from nodes._types import PluginMetadata, VariableDefinition


class ConditionExecutor:
    route_key = "branchPath"
    metadata = PluginMetadata(
        type="condition",
        name="Condition",
        description="Routes data to the true or false branch based on an expression",
        version="1.0.0",
        category="condition",
        icon="git-branch",
        color="#f59e0b",
        tags=("if", "branch", "logic"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Condition", "condition": "input.value > 0"}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("conditionResult", "boolean", "Result of the condition", True),
            VariableDefinition("conditionExpression", "string", "Expression that was evaluated"),
            VariableDefinition("evaluatedAt", "string", "ISO evaluation time"),
            VariableDefinition("evaluationDuration", "number", "Evaluation time in ms"),
            VariableDefinition("branchPath", "string", "Selected branch", "true"),
        ]

    def get_required_connections(self) -> dict[str, int]:
        return {"inputs": 1, "outputs": 2}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        expression = (data.get("condition") or "").strip()
        if not expression:
            return ["Condition expression is required"]

        errors = [
            f"Condition contains blocked construct: {name}"
            for name in find_dangerous_patterns(expression)
        ]
        syntax_error = check_syntax(expression)
        if syntax_error:
            errors.append(syntax_error)
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        expression = (data.get("condition") or "").strip()
        start = time.perf_counter()
        payload = as_mapping(input)

        try:
            if not expression:
                raise ExpressionError("Condition expression is required")
            blocked = find_dangerous_patterns(expression)
            if blocked:
                raise ExpressionError(f"Blocked construct in condition: {', '.join(blocked)}")
            processed = context.replace_variables(expression, input)
            result = bool(context.evaluate_expression(processed, input))
        except ExpressionError as exc:
            context.logger.warning("Condition failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {
                **payload,
                "conditionResult": False,
                "conditionExpression": expression,
                "conditionError": str(exc),
                "error": str(exc),
                "evaluatedAt": now_iso(),
                "evaluationDuration": elapsed_ms(start),
                "branchPath": "false",
            }

        return {
            **payload,
            "conditionResult": result,
            "conditionExpression": expression,
            "evaluatedAt": now_iso(),
            "evaluationDuration": elapsed_ms(start),
            "branchPath": "true" if result else "false",
        }


executor = ConditionExecutor()
