"""Switch node — route to the first case whose value matches the expression."""

from __future__ import annotations

import time
from typing import Any

from nodes._coerce import as_mapping, elapsed_ms, now_iso, to_bool
from nodes._expressions import (
    ExpressionError,
    check_syntax,
    find_dangerous_patterns,
    stringify,
)
from nodes._types import PluginMetadata, VariableDefinition


def _case_list(data: dict[str, Any]) -> list[dict[str, Any]]:
    cases = data.get("cases")
    if not isinstance(cases, list):
        return []
    return [case for case in cases if isinstance(case, dict)]


class SwitchExecutor:
    route_key = "outputPath"
    metadata = PluginMetadata(
        type="switch",
        name="Switch",
        description="Routes data to one of several branches by matching a value",
        version="1.0.0",
        category="condition",
        icon="shuffle",
        color="#8b5cf6",
        tags=("case", "branch", "router"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Switch",
            "expression": "input.status",
            "cases": [
                {"value": "active", "label": "Active"},
                {"value": "inactive", "label": "Inactive"},
            ],
            "hasDefault": True,
        }

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("switchValue", "string", "Stringified expression result", "active"),
            VariableDefinition("matchedCase", "object", "The case that matched, or null"),
            VariableDefinition("matchedCaseIndex", "number", "Index of the matched case, -1 for default", 0),
            VariableDefinition("outputPath", "string", "Selected branch", "active"),
            VariableDefinition("isDefaultCase", "boolean", "Whether the default branch was taken", False),
            VariableDefinition("availableCases", "array", "All declared cases"),
        ]

    def get_required_connections(self) -> dict[str, int]:
        return {"inputs": 1, "outputs": len(_case_list(self.create_default_data())) + 1}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        expression = (data.get("expression") or "").strip()
        if not expression:
            errors.append("Switch expression is required")
        else:
            errors.extend(
                f"Switch expression contains blocked construct: {name}"
                for name in find_dangerous_patterns(expression)
            )
            syntax_error = check_syntax(expression)
            if syntax_error:
                errors.append(syntax_error)

        cases = _case_list(data)
        if not cases:
            errors.append("At least one case is required")

        seen: set[str] = set()
        for index, case in enumerate(cases, start=1):
            value = str(case.get("value", "")).strip()
            if not value:
                errors.append(f"Case {index} value is required")
            elif value in seen:
                errors.append(f"Case value '{value}' is duplicated")
            else:
                seen.add(value)
            if not str(case.get("label", "")).strip():
                errors.append(f"Case {index} label is required")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        expression = (data.get("expression") or "").strip()
        cases = _case_list(data)
        has_default = to_bool(data.get("hasDefault", False))
        payload = as_mapping(input)
        start = time.perf_counter()
        processed = expression

        def _result(**fields: Any) -> dict[str, Any]:
            return {
                **payload,
                "switchExpression": expression,
                "processedExpression": processed,
                "availableCases": cases,
                "evaluatedAt": now_iso(),
                "switchStats": {
                    "totalCases": len(cases),
                    "hasDefault": has_default,
                    "evaluationDuration": elapsed_ms(start),
                },
                **fields,
            }

        try:
            if not expression:
                raise ExpressionError("Switch expression is required")
            processed = context.replace_variables(expression, input)
            switch_value = stringify(context.evaluate_expression(processed, input))
        except ExpressionError as exc:
            return self._failure(context, _result, str(exc), None)

        for index, case in enumerate(cases):
            case_value = context.replace_variables(str(case.get("value", "")), input)
            if case_value == switch_value:
                context.logger.debug("Switch matched case %d (%s)", index, case_value)
                return _result(
                    switchValue=switch_value,
                    matchedCase=case,
                    matchedCaseIndex=index,
                    outputPath=case_value,
                    isDefaultCase=False,
                    switchEvaluated=True,
                )

        if has_default:
            return _result(
                switchValue=switch_value,
                matchedCase=None,
                matchedCaseIndex=-1,
                outputPath="default",
                isDefaultCase=True,
                switchEvaluated=True,
            )

        message = f"No case matched value '{switch_value}' and no default case is enabled"
        return self._failure(context, _result, message, switch_value)

    def _failure(
        self, context: Any, build: Any, message: str, switch_value: str | None
    ) -> dict[str, Any]:
        context.logger.warning("Switch failed: %s", message)
        context.emit("node.execution.failed", nodeType=self.metadata.type, error=message)
        return build(
            switchValue=switch_value,
            matchedCase=None,
            matchedCaseIndex=-1,
            outputPath="error",
            isDefaultCase=False,
            switchEvaluated=False,
            switchError=message,
            error=message,
        )


executor = SwitchExecutor()
