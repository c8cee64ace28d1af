"""Loop node — iterate an array, capped by a maximum iteration count."""

from __future__ import annotations

import keyword
import time
from typing import Any

from nodes._coerce import as_mapping, elapsed_ms, now_iso, to_int
from nodes._expressions import ExpressionError, check_syntax, find_dangerous_patterns
from nodes._paths import is_identifier
from nodes._types import PluginMetadata, VariableDefinition

MAX_ITERATIONS_LIMIT = 1000
RESERVED_NAMES = frozenset(
    {
        "input",
        "true",
        "false",
        "null",
        "undefined",
        "loopIndex",
        "loopTotal",
        "loopProgress",
        "isFirstIteration",
        "isLastIteration",
        "currentLoopItem",
        "iterationNumber",
    }
)


class LoopExecutor:
    metadata = PluginMetadata(
        type="loop",
        name="Loop",
        description="Iterates over an array and collects a result per item",
        version="1.0.0",
        category="utility",
        icon="repeat",
        color="#06b6d4",
        tags=("iterate", "each", "array"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Loop",
            "iterateOver": "input.items",
            "itemVariable": "item",
            "maxIterations": 100,
        }

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("loopResults", "array", "One entry per processed item"),
            VariableDefinition("loopIterations", "number", "Number of iterations run", 3),
            VariableDefinition("loopCompleted", "boolean", "Whether every item was processed", True),
            VariableDefinition("firstIteration", "object", "First iteration entry"),
            VariableDefinition("lastIteration", "object", "Last iteration entry"),
            VariableDefinition("loopStats", "object", "Counts, timing and truncation info"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        iterate_over = (data.get("iterateOver") or "").strip()
        if not iterate_over:
            errors.append("Array expression to iterate over is required")
        else:
            errors.extend(
                f"Loop expression contains blocked construct: {name}"
                for name in find_dangerous_patterns(iterate_over)
            )
            syntax_error = check_syntax(iterate_over)
            if syntax_error:
                errors.append(syntax_error)

        item_variable = data.get("itemVariable") or "item"
        if not is_identifier(item_variable) or keyword.iskeyword(item_variable):
            errors.append("Item variable must be a valid identifier")
        elif item_variable in RESERVED_NAMES:
            errors.append(f"Item variable '{item_variable}' is reserved")

        max_iterations = data.get("maxIterations")
        if max_iterations is not None:
            value = to_int(max_iterations, -1)
            if value < 1 or value > MAX_ITERATIONS_LIMIT:
                errors.append(f"Max iterations must be between 1 and {MAX_ITERATIONS_LIMIT}")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        iterate_over = (data.get("iterateOver") or "").strip()
        item_variable = data.get("itemVariable") or "item"
        limit = to_int(data.get("maxIterations"), context.config.execution.max_iterations)
        limit = max(1, min(limit, MAX_ITERATIONS_LIMIT))
        payload = as_mapping(input)
        start = time.perf_counter()

        try:
            processed = context.replace_variables(iterate_over, input)
            items = context.evaluate_expression(processed, input)
            if isinstance(items, tuple):
                items = list(items)
            if not isinstance(items, list):
                raise ExpressionError(
                    f"Loop expression must resolve to an array, got {type(items).__name__}"
                )
        except ExpressionError as exc:
            context.logger.warning("Loop failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {
                **payload,
                "loopResults": [],
                "loopIterations": 0,
                "loopCompleted": False,
                "loopError": str(exc),
                "error": str(exc),
            }

        total = len(items)
        processed_items = items[:limit]
        count = len(processed_items)
        results: list[dict[str, Any]] = []

        for index, item in enumerate(processed_items):
            context.emit("loop.iteration.started", index=index, total=count)
            progress = round((index + 1) / count * 100, 2)
            iteration_input = {
                **payload,
                item_variable: item,
                "loopIndex": index,
                "loopTotal": count,
                "loopProgress": progress,
                "isFirstIteration": index == 0,
                "isLastIteration": index == count - 1,
                "currentLoopItem": item,
                "iterationNumber": index + 1,
            }
            results.append(
                {
                    "index": index,
                    "iterationNumber": index + 1,
                    "item": item,
                    "iterationInput": iteration_input,
                    "isFirst": index == 0,
                    "isLast": index == count - 1,
                    "progress": progress,
                    "processedAt": now_iso(),
                }
            )
            context.emit("loop.iteration.completed", index=index, total=count)

        truncated = total > limit
        if truncated:
            context.logger.warning("Loop truncated to %d of %d items", limit, total)

        return {
            **payload,
            "loopResults": results,
            "loopIterations": count,
            "loopCompleted": not truncated,
            "firstIteration": results[0] if results else None,
            "lastIteration": results[-1] if results else None,
            "originalArray": items,
            "processedArray": processed_items,
            "loopStats": {
                "totalItems": total,
                "processedItems": count,
                "truncated": truncated,
                "maxIterationsLimit": limit,
                "processingTime": elapsed_ms(start),
            },
        }


executor = LoopExecutor()
