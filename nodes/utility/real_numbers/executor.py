"""Real numbers node — a random number in a range, rounded to fixed places."""

from __future__ import annotations

import random
from typing import Any

from nodes._coerce import as_mapping, now_iso, to_number
from nodes._types import PluginMetadata, VariableDefinition

MAX_DECIMAL_PLACES = 10


class RealNumbersExecutor:
    metadata = PluginMetadata(
        type="real-numbers",
        name="Real Numbers",
        description="Generates a random real number within a range",
        version="1.0.0",
        category="utility",
        icon="hash",
        color="#3b82f6",
        tags=("number", "random", "math", "testing"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Real Numbers", "minValue": 0, "maxValue": 100, "decimalPlaces": 2}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("randomNumber", "number", "Generated random number", 42.58),
            VariableDefinition("numberString", "string", "Generated number as text", "42.58"),
            VariableDefinition("generatedAt", "string", "ISO timestamp of generation"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        bounds: dict[str, float] = {}
        for key, label in (("minValue", "Minimum"), ("maxValue", "Maximum")):
            raw = data.get(key)
            # References resolve at run time.
            if isinstance(raw, str) and "{" in raw:
                continue
            try:
                bounds[key] = to_number(raw)
            except ValueError:
                errors.append(f"{label} value must be a number")
        if len(bounds) == 2 and bounds["minValue"] > bounds["maxValue"]:
            errors.append("Minimum value cannot be greater than maximum value")
        places = data.get("decimalPlaces", 2)
        if isinstance(places, bool) or not isinstance(places, int) or not 0 <= places <= MAX_DECIMAL_PLACES:
            errors.append(f"Decimal places must be an integer between 0 and {MAX_DECIMAL_PLACES}")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        payload = as_mapping(input)

        try:
            low = self._bound(data, "minValue", 0, input, context)
            high = self._bound(data, "maxValue", 100, input, context)
            if low > high:
                raise ValueError("Minimum value cannot be greater than maximum value")
            places = max(0, min(int(to_number(data.get("decimalPlaces", 2))), MAX_DECIMAL_PLACES))
            value = round(random.uniform(low, high), places)
            if places == 0:
                value = int(value)
        except ValueError as exc:
            context.logger.error("Real numbers node failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {
                **payload,
                "error": str(exc),
                "randomNumber": 0,
                "numberString": "0",
                "generatedAt": now_iso(),
            }

        context.logger.info("Generated real number: %s", value)
        return {
            **payload,
            "randomNumber": value,
            "numberString": str(value),
            "generatedAt": now_iso(),
        }

    def _bound(self, data: dict[str, Any], key: str, default: float, input: Any, context: Any) -> float:
        raw = data.get(key, default)
        if isinstance(raw, str):
            raw = context.replace_variables(raw, input)
        return float(to_number(raw))


executor = RealNumbersExecutor()
