"""LLM Agent node — single LLM call, substituted prompt in, text and parsed JSON out."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from backend.services import model_factory
from nodes._coerce import as_mapping, elapsed_ms, now_iso
from nodes._types import PluginMetadata, VariableDefinition


def _parse_response(text: str) -> dict[str, Any]:
    stripped = text.strip()
    if stripped.startswith("```"):
        # ```json ... ``` fenced output
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        return {"text": text, "raw": text}
    return parsed if isinstance(parsed, dict) else {"text": text, "raw": parsed}


class LlmAgentExecutor:
    metadata = PluginMetadata(
        type="llm-agent",
        name="LLM Agent",
        description="Sends a prompt to a language model and returns its answer",
        version="1.0.0",
        category="action",
        icon="sparkles",
        color="#a855f7",
        tags=("ai", "llm", "gpt", "prompt"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "LLM Agent",
            "prompt": "Summarize the following data: {input}",
            "systemPrompt": "",
            "model": "",
            "temperature": 0.7,
            "maxTokens": 1000,
        }

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("llmText", "string", "Raw model answer"),
            VariableDefinition("llmResponse", "object", "Answer parsed as JSON, or {text, raw}"),
            VariableDefinition("llmMetadata", "object", "Model, timing and usage"),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        if not (data.get("prompt") or "").strip():
            errors.append("Prompt is required")

        temperature = data.get("temperature")
        if temperature is not None:
            try:
                if not 0 <= float(temperature) <= 2:
                    errors.append("Temperature must be between 0 and 2")
            except (TypeError, ValueError):
                errors.append("Temperature must be a number")

        max_tokens = data.get("maxTokens")
        if max_tokens is not None:
            try:
                if int(max_tokens) < 1:
                    errors.append("Max tokens must be positive")
            except (TypeError, ValueError):
                errors.append("Max tokens must be an integer")

        model = (data.get("model") or "").strip()
        if model:
            try:
                model_factory.parse_model_string(model)
            except model_factory.ModelResolutionError as exc:
                errors.append(str(exc))
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        payload = as_mapping(input)
        config = context.config
        model_str = (data.get("model") or "").strip() or config.api.default_model
        timeout_ms = config.execution.default_timeout_ms
        start = time.perf_counter()

        try:
            prompt = context.replace_variables(data.get("prompt") or "", input)
            if not prompt.strip():
                raise ValueError("Prompt is required")
            system_prompt = context.replace_variables(data.get("systemPrompt") or "", input)

            kwargs: dict[str, Any] = {}
            if data.get("temperature") is not None:
                kwargs["temperature"] = float(data["temperature"])
            if data.get("maxTokens") is not None:
                kwargs["max_tokens"] = int(data["maxTokens"])

            model = model_factory.resolve_model(model_str, config.api, **kwargs)
            context.logger.info("LLM call to %s", model_str)
            text, usage = await asyncio.wait_for(
                model_factory.generate_text(model, prompt, system_prompt or None),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return self._failure(payload, context, model_str, f"LLM call timed out after {timeout_ms}ms")
        except Exception as exc:
            # Provider SDKs raise their own exception types; all become data here.
            return self._failure(payload, context, model_str, str(exc) or type(exc).__name__)

        return {
            **payload,
            "llmText": text,
            "llmResponse": _parse_response(text),
            "llmMetadata": {
                "model": model_str,
                "prompt": prompt,
                "responseTime": elapsed_ms(start),
                "usage": usage,
                "completedAt": now_iso(),
            },
        }

    def _failure(
        self, payload: dict[str, Any], context: Any, model_str: str, message: str
    ) -> dict[str, Any]:
        context.logger.warning("LLM call failed: %s", message)
        context.emit("node.execution.failed", nodeType=self.metadata.type, error=message)
        return {
            **payload,
            "llmText": None,
            "llmResponse": {"error": message, "success": False},
            "llmError": message,
            "llmMetadata": {"model": model_str, "completedAt": now_iso()},
        }


executor = LlmAgentExecutor()
