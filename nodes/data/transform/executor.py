"""Transform node — reshape data with an expression.

Strategies:
  extract  evaluate the expression against the input
  format   substitute {references}, then evaluate
  parse    parse JSON text from the input, else evaluate
  filter   keep items (or entries) for which the expression is truthy
  custom   evaluate with the full input plus helper names
"""

from __future__ import annotations

import csv
import io
import json
import time
from typing import Any

from nodes._coerce import as_mapping, elapsed_ms, json_size
from nodes._expressions import (
    ExpressionError,
    check_syntax,
    find_dangerous_patterns,
    stringify,
)
from nodes._types import PluginMetadata, VariableDefinition

TRANSFORM_TYPES = ("extract", "format", "parse", "filter", "custom")
OUTPUT_FORMATS = ("json", "csv", "text", "array")


def to_csv(value: Any) -> str:
    rows = value if isinstance(value, list) else [value]
    if not rows:
        return ""
    if all(isinstance(row, dict) for row in rows):
        headers: list[str] = []
        for row in rows:
            headers.extend(key for key in row if key not in headers)
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=headers, lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({key: stringify(row.get(key)) for key in headers})
        return buffer.getvalue().rstrip("\n")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        writer.writerow([stringify(cell) for cell in row] if isinstance(row, list) else [stringify(row)])
    return buffer.getvalue().rstrip("\n")


def apply_format(value: Any, output_format: str) -> Any:
    if output_format == "csv":
        return to_csv(value)
    if output_format == "text":
        return value if isinstance(value, str) else stringify(value)
    if output_format == "array":
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            return list(value.values())
        return [value]
    return value


class TransformExecutor:
    metadata = PluginMetadata(
        type="transform",
        name="Data Transform",
        description="Extracts, reshapes, parses or filters data with expressions",
        version="1.0.0",
        category="transform",
        icon="shuffle",
        color="#3b82f6",
        tags=("map", "filter", "json", "csv"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Transform",
            "transformType": "extract",
            "transformLogic": "input",
            "outputFormat": "json",
        }

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("transformedData", "object", "Result of the transform"),
            VariableDefinition("transformType", "string", "Strategy that ran", "extract"),
            VariableDefinition("transformSuccess", "boolean", "Whether the transform succeeded", True),
            VariableDefinition("transformStats", "object", "Sizes, timing and item counts"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        transform_type = data.get("transformType", "extract")
        if transform_type not in TRANSFORM_TYPES:
            errors.append(f"Transform type must be one of: {', '.join(TRANSFORM_TYPES)}")
        output_format = data.get("outputFormat", "json")
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"Output format must be one of: {', '.join(OUTPUT_FORMATS)}")

        logic = (data.get("transformLogic") or "").strip()
        if not logic:
            errors.append("Transform logic is required")
        else:
            errors.extend(
                f"Transform logic contains blocked construct: {name}"
                for name in find_dangerous_patterns(logic)
            )
            if "{" not in logic:
                syntax_error = check_syntax(logic)
                if syntax_error:
                    errors.append(syntax_error)
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        transform_type = data.get("transformType", "extract")
        output_format = data.get("outputFormat", "json")
        logic = (data.get("transformLogic") or "").strip()
        payload = as_mapping(input)
        start = time.perf_counter()
        items_processed = 0

        try:
            if not logic:
                raise ExpressionError("Transform logic is required")
            blocked = find_dangerous_patterns(logic)
            if blocked:
                raise ExpressionError(f"Blocked construct in transform: {', '.join(blocked)}")
            result, items_processed = self._run(transform_type, logic, input, context)
            transformed = apply_format(result, output_format)
        except (ExpressionError, ValueError, TypeError) as exc:
            context.logger.warning("Transform failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {
                **payload,
                "transformedData": None,
                "transformType": transform_type,
                "transformSuccess": False,
                "transformError": str(exc),
                "error": str(exc),
                "transformStats": self._stats(input, None, start, items_processed, output_format),
            }

        return {
            **payload,
            "transformedData": transformed,
            "transformType": transform_type,
            "transformSuccess": True,
            "transformStats": self._stats(input, transformed, start, items_processed, output_format),
        }

    def _run(self, transform_type: str, logic: str, input: Any, context: Any) -> tuple[Any, int]:
        if transform_type == "extract":
            return context.evaluate_expression(logic, input), 1

        if transform_type == "format":
            return context.evaluate_expression(context.replace_variables(logic, input), input), 1

        if transform_type == "parse":
            source = input.get("data", input) if isinstance(input, dict) else input
            if isinstance(source, str):
                try:
                    return json.loads(source), 1
                except json.JSONDecodeError:
                    pass
            return context.evaluate_expression(logic, input), 1

        if transform_type == "filter":
            source = input
            # Flow payloads are dicts; filter their "items" list when present.
            if isinstance(input, dict) and isinstance(input.get("items"), list):
                source = input["items"]
            if isinstance(source, list):
                kept = [
                    item
                    for index, item in enumerate(source)
                    if context.evaluate_expression(logic, input, names={"item": item, "index": index, "array": source})
                ]
                return kept, len(source)
            if isinstance(source, dict):
                kept_entries = {
                    key: value
                    for key, value in source.items()
                    if context.evaluate_expression(logic, input, names={"key": key, "value": value, "object": source})
                }
                return kept_entries, len(source)
            raise ValueError("Filter transform requires an array or object input")

        if transform_type == "custom":
            processed = context.replace_variables(logic, input)
            return context.evaluate_expression(processed, input, names={"data": input}), 1

        raise ValueError(f"Unknown transform type: {transform_type}")

    def _stats(
        self, input: Any, output: Any, start: float, items: int, output_format: str
    ) -> dict[str, Any]:
        return {
            "inputSize": json_size(input),
            "outputSize": json_size(output) if output is not None else 0,
            "processingTime": elapsed_ms(start),
            "itemsProcessed": items,
            "appliedFormat": output_format,
        }


executor = TransformExecutor()
