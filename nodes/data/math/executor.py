"""Math node — one arithmetic operation over two operands."""

from __future__ import annotations

import operator
from typing import Any, Callable

from nodes._coerce import as_mapping, to_number
from nodes._types import PluginMetadata, VariableDefinition

OPERATIONS: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


class MathExecutor:
    metadata = PluginMetadata(
        type="math",
        name="Math",
        description="Adds, subtracts, multiplies or divides two values",
        version="1.0.0",
        category="transform",
        icon="calculator",
        color="#14b8a6",
        tags=("arithmetic", "number"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Math", "operation": "+", "left": "0", "right": "0"}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("mathResult", "number", "Result of the operation", 42),
            VariableDefinition("mathOperation", "string", "Operator applied", "+"),
            VariableDefinition("mathOperands", "array", "Resolved operands"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        if data.get("operation", "+") not in OPERATIONS:
            errors.append(f"Operation must be one of: {' '.join(OPERATIONS)}")
        for side in ("left", "right"):
            if str(data.get(side, "")).strip() == "":
                errors.append(f"{side.capitalize()} operand is required")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        op = data.get("operation", "+")
        payload = as_mapping(input)

        try:
            if op not in OPERATIONS:
                raise ValueError(f"Unsupported operation: {op}")
            left = to_number(context.replace_variables(str(data.get("left", "")), input))
            right = to_number(context.replace_variables(str(data.get("right", "")), input))
            if op == "/" and right == 0:
                raise ValueError("Division by zero")
            result = OPERATIONS[op](left, right)
        except ValueError as exc:
            context.logger.warning("Math failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {**payload, "mathResult": None, "mathOperation": op, "mathError": str(exc), "error": str(exc)}

        return {
            **payload,
            "mathResult": result,
            "mathOperation": op,
            "mathOperands": [left, right],
        }


executor = MathExecutor()
