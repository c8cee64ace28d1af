"""Nested variable extraction.

Walks a node's output and produces a flat catalog of addressable paths:

  {"user": {"name": "Ada"}, "tags": ["a", "b"]}
    -> user, user.name, tags, tags.length, tags[0], tags[1]

Traversal is iterative and bounded by depth, per-level fan-out, value size
and total count. Extraction never raises; on an internal error the result is
an empty catalog.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from nodes._paths import child_path
from nodes._types import RuntimeVariable

logger = logging.getLogger(__name__)

ROOT_PATH = "value"


@dataclass(frozen=True)
class ExtractionLimits:
    max_depth: int = 6
    max_array_items: int = 10
    max_properties_per_level: int = 50
    max_value_size: int = 1024 * 1024
    max_total_variables: int = 500


def infer_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return "undefined"


def preview(value: Any) -> Any:
    """Short example for display."""
    if isinstance(value, str) and len(value) > 100:
        return value[:100] + "..."
    if isinstance(value, (list, tuple)):
        items = list(value)
        return items[:3] + ["..."] if len(items) > 3 else items
    if isinstance(value, Mapping):
        try:
            encoded = json.dumps(value, default=str)
        except (TypeError, ValueError):
            encoded = ""
        if len(encoded) > 200:
            keys = list(value.keys())
            suffix = ", ..." if len(keys) > 3 else ""
            return "{" + ", ".join(str(k) for k in keys[:3]) + suffix + "}"
    return value


def _description(node_id: str) -> str:
    return f"Dynamic variable extracted from {node_id}"


class NestedVariableExtractor:
    def __init__(self, limits: ExtractionLimits | None = None):
        self.limits = limits or ExtractionLimits()

    def extract(self, value: Any, node_id: str) -> list[RuntimeVariable]:
        try:
            return self._extract(value, node_id)
        except Exception as exc:
            logger.warning("Variable extraction failed for %s: %s", node_id, exc)
            return []

    def get_stats(self) -> dict[str, int]:
        return {
            "maxDepth": self.limits.max_depth,
            "maxArrayItems": self.limits.max_array_items,
            "maxPropertiesPerLevel": self.limits.max_properties_per_level,
            "maxValueSize": self.limits.max_value_size,
            "maxTotalVariables": self.limits.max_total_variables,
        }

    # ── Traversal ───────────────────────────────────────────────────

    def _extract(self, value: Any, node_id: str) -> list[RuntimeVariable]:
        extracted_at = time.time()
        limits = self.limits

        if callable(value) and not isinstance(value, (Mapping, list, tuple)):
            return []
        if not isinstance(value, (Mapping, list, tuple)):
            if self._too_large(value):
                return []
            return [self._make(node_id, ROOT_PATH, ROOT_PATH, value, None, 0, extracted_at)]

        variables: list[RuntimeVariable] = []
        # Children can only be oversized when the whole value is.
        check_sizes = self._too_large(value)
        # (value, path, depth, ancestors by id)
        stack: list[tuple[Any, str, int, frozenset[int]]] = [(value, "", 0, frozenset())]

        while stack:
            current, path, depth, ancestors = stack.pop()
            if len(variables) >= limits.max_total_variables:
                logger.debug("Variable limit reached for %s", node_id)
                break

            if id(current) in ancestors:
                continue
            lineage = ancestors | {id(current)}
            children: list[tuple[str | int, Any]]

            if isinstance(current, Mapping):
                children = list(current.items())[: limits.max_properties_per_level]
            else:
                items = list(current)
                children = list(enumerate(items[: limits.max_array_items]))
                length_path = f"{path}.length" if path else "length"
                if depth + 1 < limits.max_depth:
                    variables.append(
                        self._make(node_id, "length", length_path, len(items), path or None, depth + 1, extracted_at)
                    )

            pushed: list[tuple[Any, str, int, frozenset[int]]] = []
            for key, child in children:
                if len(variables) >= limits.max_total_variables:
                    break
                if not isinstance(key, (str, int)):
                    key = str(key)
                child_depth = depth + 1
                if child_depth >= limits.max_depth:
                    continue
                if callable(child) and not isinstance(child, (Mapping, list, tuple)):
                    continue
                if isinstance(child, (Mapping, list, tuple)) and id(child) in lineage:
                    continue
                if check_sizes and self._too_large(child):
                    continue

                child_address = child_path(path, key)
                name = f"[{key}]" if isinstance(key, int) else key
                variables.append(
                    self._make(node_id, name, child_address, child, path or None, child_depth, extracted_at)
                )
                if isinstance(child, (Mapping, list, tuple)):
                    pushed.append((child, child_address, child_depth, lineage))

            # Reverse so siblings are visited in declaration order.
            stack.extend(reversed(pushed))

        return variables[: limits.max_total_variables]

    def _too_large(self, value: Any) -> bool:
        if isinstance(value, str):
            return len(value) > self.limits.max_value_size
        if not isinstance(value, (Mapping, list, tuple)):
            return False
        try:
            size = len(json.dumps(value, default=str))
        except ValueError:
            # Circular; the traversal handles cycles itself.
            return False
        return size > self.limits.max_value_size

    def _make(
        self,
        node_id: str,
        name: str,
        path: str,
        value: Any,
        parent_path: str | None,
        depth: int,
        extracted_at: float,
    ) -> RuntimeVariable:
        return RuntimeVariable(
            name=name,
            path=path,
            full_path=f"{node_id}.{path}",
            type=infer_type(value),
            description=_description(node_id),
            example=preview(value),
            actual_value=value,
            source_node_id=node_id,
            parent_path=parent_path,
            depth=depth,
            is_nested=depth > 1,
            extracted_at=extracted_at,
        )
