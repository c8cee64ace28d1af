"""HTTP Request node — call an external endpoint with substituted fields."""

from __future__ import annotations

import json
import time
from typing import Any
from urllib.parse import urlparse

import httpx

from nodes._coerce import as_mapping, elapsed_ms, to_int
from nodes._paths import REFERENCE_PATTERN
from nodes._types import PluginMetadata, VariableDefinition

METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
MIN_TIMEOUT_MS = 1000
MAX_TIMEOUT_MS = 60000


def _build_client(timeout_seconds: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True)


def _parse_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


class HttpRequestExecutor:
    metadata = PluginMetadata(
        type="http-request",
        name="HTTP Request",
        description="Sends an HTTP request and returns the response",
        version="1.0.0",
        category="action",
        icon="globe",
        color="#0ea5e9",
        tags=("api", "rest", "webhook"),
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "HTTP Request",
            "method": "GET",
            "url": "https://api.example.com/data",
            "headers": {},
            "body": "",
            "timeout": 10000,
        }

    def get_output_schema(self) -> list[VariableDefinition]:
        return [
            VariableDefinition("httpResponse", "object", "Status, headers, body and timing"),
            VariableDefinition("responseData", "object", "Parsed response body"),
            VariableDefinition("responseStatus", "number", "HTTP status code, 0 on failure", 200),
        ]

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        url = (data.get("url") or "").strip()
        if not url:
            errors.append("URL is required")
        elif "{" not in url:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append("URL must be a valid http(s) address")

        method = str(data.get("method", "GET")).upper()
        if method not in METHODS:
            errors.append(f"Method must be one of: {', '.join(METHODS)}")

        timeout = data.get("timeout")
        if timeout is not None:
            value = to_int(timeout, -1)
            if value < MIN_TIMEOUT_MS or value > MAX_TIMEOUT_MS:
                errors.append("Timeout must be between 1000 and 60000ms")

        body = data.get("body")
        stripped = body.strip() if isinstance(body, str) else ""
        if stripped.startswith(("{", "[")):
            try:
                json.loads(stripped)
            except json.JSONDecodeError as exc:
                # References only become valid JSON after substitution.
                if not REFERENCE_PATTERN.search(stripped):
                    errors.append(f"Body is not valid JSON: {exc.msg}")

        headers = data.get("headers")
        if headers is not None and not isinstance(headers, dict):
            errors.append("Headers must be an object")
        return errors

    async def execute(
        self, input: Any, data: dict[str, Any], context: Any
    ) -> dict[str, Any]:
        method = str(data.get("method", "GET")).upper()
        timeout_ms = to_int(data.get("timeout"), context.config.execution.default_timeout_ms)
        timeout_ms = max(MIN_TIMEOUT_MS, min(timeout_ms, MAX_TIMEOUT_MS))
        payload = as_mapping(input)
        start = time.perf_counter()

        try:
            if method not in METHODS:
                raise ValueError(f"Unsupported HTTP method: {method}")
            url = context.replace_variables((data.get("url") or "").strip(), input)
            if not url:
                raise ValueError("URL is required")

            headers = {
                str(key): context.replace_variables(str(value), input)
                for key, value in (data.get("headers") or {}).items()
            }
            request_kwargs: dict[str, Any] = {"headers": headers}
            body = data.get("body")
            if method in ("POST", "PUT", "PATCH") and body not in (None, ""):
                request_kwargs.update(self._body(body, headers, input, context))

            context.logger.info("HTTP %s %s", method, url)
            async with _build_client(timeout_ms / 1000) as client:
                response = await client.request(method, url, **request_kwargs)
        except (
            httpx.HTTPError,
            httpx.InvalidURL,
            httpx.StreamError,
            httpx.CookieConflict,
            ValueError,
        ) as exc:
            message = str(exc) or type(exc).__name__
            if isinstance(exc, httpx.TimeoutException):
                message = f"Request timed out after {timeout_ms}ms"
            context.logger.warning("HTTP request failed: %s", message)
            context.emit("node.execution.failed", nodeType=self.metadata.type, error=message)
            return {
                **payload,
                "httpResponse": {"error": True, "errorMessage": message, "success": False},
                "responseData": None,
                "responseStatus": 0,
            }

        response_data = _parse_body(response)
        return {
            **payload,
            "httpResponse": {
                "status": response.status_code,
                "statusText": response.reason_phrase,
                "headers": dict(response.headers),
                "data": response_data,
                "responseTime": elapsed_ms(start),
                "success": response.is_success,
            },
            "responseData": response_data,
            "responseStatus": response.status_code,
        }

    def _body(
        self, body: Any, headers: dict[str, str], input: Any, context: Any
    ) -> dict[str, Any]:
        if not isinstance(body, str):
            return {"json": body}

        text = context.replace_variables(body, input)
        content_type = next(
            (value for key, value in headers.items() if key.lower() == "content-type"), ""
        )
        if "json" in content_type or text.strip().startswith(("{", "[")):
            try:
                return {"json": json.loads(text)}
            except json.JSONDecodeError as exc:
                raise ValueError(f"Request body is not valid JSON: {exc.msg}") from exc
        return {"content": text}


executor = HttpRequestExecutor()
