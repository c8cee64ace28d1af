"""Delay node — pause the flow for a fixed, computed or conditional time."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from nodes._coerce import as_mapping, elapsed_ms, now_iso, to_number
from nodes._expressions import ExpressionError
from nodes._types import PluginMetadata, VariableDefinition

MAX_FIXED_DELAY_MS = 5 * 60 * 1000
MAX_UNTIL_WAIT_MS = 10 * 60 * 1000
DEFAULT_CHECK_INTERVAL_MS = 1000
MIN_CHECK_INTERVAL_MS = 1
DELAY_MODES = ("fixed", "dynamic", "until")


class DelayExecutor:
    metadata = PluginMetadata(
        type="delay",
        name="Delay",
        description="Waits for a duration or until a condition holds",
        version="1.0.0",
        category="utility",
        icon="clock",
        color="#64748b",
        tags=("wait", "sleep", "timer"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Delay", "mode": "fixed", "durationMs": 1000}

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("delayInfo", "object", "Requested and actual wait details"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        mode = data.get("mode", "fixed")
        if mode not in DELAY_MODES:
            errors.append(f"Delay mode must be one of: {', '.join(DELAY_MODES)}")
        if mode == "fixed":
            try:
                duration = to_number(data.get("durationMs", 0))
            except ValueError:
                errors.append("Delay duration must be a number")
            else:
                if duration < 0 or duration > MAX_FIXED_DELAY_MS:
                    errors.append("Delay duration must be between 0 and 300000ms")
        if mode in ("dynamic", "until") and not (data.get("expression") or "").strip():
            errors.append(f"An expression is required for {mode} delays")
        if mode == "until" and "checkIntervalMs" in data:
            try:
                interval = to_number(data["checkIntervalMs"])
            except ValueError:
                errors.append("Check interval must be a number")
            else:
                if interval < MIN_CHECK_INTERVAL_MS:
                    errors.append("Check interval must be at least 1ms")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        mode = data.get("mode", "fixed")
        payload = as_mapping(input)
        start = time.perf_counter()

        try:
            if mode == "until":
                requested, satisfied = await self._wait_until(data, input, context)
            else:
                requested = self._duration(mode, data, input, context)
                await asyncio.sleep(requested / 1000)
                satisfied = True
        except (ExpressionError, ValueError) as exc:
            context.logger.warning("Delay failed: %s", exc)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=str(exc))
            return {
                **payload,
                "delayInfo": {"mode": mode, "success": False, "error": str(exc)},
                "error": str(exc),
            }

        return {
            **payload,
            "delayInfo": {
                "mode": mode,
                "requestedMs": requested,
                "actualMs": elapsed_ms(start),
                "conditionMet": satisfied,
                "completedAt": now_iso(),
                "success": True,
            },
        }

    def _duration(self, mode: str, data: dict[str, Any], input: Any, context: Any) -> float:
        if mode == "dynamic":
            expression = context.replace_variables(data.get("expression") or "", input)
            raw = context.evaluate_expression(expression, input)
        elif mode == "fixed":
            raw = data.get("durationMs", 0)
        else:
            raise ValueError(f"Unknown delay mode: {mode}")

        duration = float(to_number(raw))
        if duration < 0:
            raise ValueError("Delay duration cannot be negative")
        return min(duration, MAX_FIXED_DELAY_MS)

    async def _wait_until(
        self, data: dict[str, Any], input: Any, context: Any
    ) -> tuple[float, bool]:
        expression = context.replace_variables(data.get("expression") or "", input)
        interval = max(
            float(to_number(data.get("checkIntervalMs", DEFAULT_CHECK_INTERVAL_MS))),
            MIN_CHECK_INTERVAL_MS,
        )
        max_wait = min(
            float(to_number(data.get("maxWaitMs", MAX_UNTIL_WAIT_MS))), MAX_UNTIL_WAIT_MS
        )
        start = time.monotonic()

        while True:
            if context.evaluate_expression(expression, input):
                return (time.monotonic() - start) * 1000, True
            waited = (time.monotonic() - start) * 1000
            if waited >= max_wait:
                context.logger.warning("Delay condition not met within %dms", max_wait)
                return waited, False
            await asyncio.sleep(min(interval, max_wait - waited) / 1000)


executor = DelayExecutor()
